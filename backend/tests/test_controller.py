"""Tests for branch-aware navigation and the wizard controller."""

import pytest

from app.schemas.steps import (
    DataImportSummary,
    FeatureTriage,
    InventoryChoice,
    StripeConnectStatus,
)
from app.wizard import navigation
from app.wizard.controller import WizardController
from app.wizard.errors import (
    BranchNotChosenError,
    StepNotReachableError,
    WizardClosedError,
)
from app.wizard.registry import StepKey
from app.wizard.state import (
    Direction,
    Draft,
    InventoryPath,
    NOT_STARTED,
    Saved,
    WizardState,
)

S = StepKey


def controller_at(step: StepKey, completed=(), **state_kwargs) -> WizardController:
    controller = WizardController(WizardState(completed_steps=list(completed), **state_kwargs))
    controller.hydrate({"currentStep": step.value, "completedSteps": [s.value for s in completed]})
    return controller


def with_triage(controller: WizardController, **selections) -> WizardController:
    controller.set_saved("feature_triage", FeatureTriage(selections=selections))
    return controller


@pytest.mark.unit
class TestNavigation:
    """Successor / predecessor rules over both branch points."""

    def test_linear_spine(self):
        state = WizardState()
        assert navigation.successor(state, S.PARK_PROFILE) == S.OPERATIONAL_HOURS
        assert navigation.successor(state, S.RATE_PERIODS) == S.RATES_SETUP
        assert navigation.successor(state, S.SMART_QUIZ) == S.FEATURE_TRIAGE
        assert navigation.successor(state, S.REVIEW_LAUNCH) is None

    def test_inventory_branch(self):
        assert navigation.successor(
            WizardState(inventory_path=InventoryPath.IMPORT), S.INVENTORY_CHOICE
        ) == S.DATA_IMPORT
        assert navigation.successor(
            WizardState(inventory_path=InventoryPath.MANUAL), S.INVENTORY_CHOICE
        ) == S.SITE_CLASSES
        with pytest.raises(BranchNotChosenError):
            navigation.successor(WizardState(), S.INVENTORY_CHOICE)

    def test_branch_exits(self):
        state = WizardState(inventory_path=InventoryPath.MANUAL)
        assert navigation.successor(state, S.DATA_IMPORT) == S.RATE_PERIODS
        assert navigation.successor(state, S.SITE_CLASSES) == S.SITES_BUILDER
        assert navigation.successor(state, S.SITES_BUILDER) == S.RATE_PERIODS

    def test_feature_triage_branch(self):
        state = WizardState()
        assert navigation.successor(state, S.FEATURE_TRIAGE) == S.REVIEW_LAUNCH
        state.blocks["feature_triage"] = Saved(FeatureTriage(selections={"store": "setup_now"}))
        assert navigation.successor(state, S.FEATURE_TRIAGE) == S.GUIDED_SETUP
        assert navigation.successor(state, S.GUIDED_SETUP) == S.REVIEW_LAUNCH

    def test_predecessors(self):
        manual = WizardState(inventory_path=InventoryPath.MANUAL)
        imported = WizardState(inventory_path=InventoryPath.IMPORT)
        assert navigation.predecessor(manual, S.PARK_PROFILE) is None
        assert navigation.predecessor(manual, S.SITE_CLASSES) == S.INVENTORY_CHOICE
        assert navigation.predecessor(imported, S.SITE_CLASSES) == S.DATA_IMPORT
        assert navigation.predecessor(manual, S.RATE_PERIODS) == S.SITES_BUILDER
        assert navigation.predecessor(imported, S.RATE_PERIODS) == S.DATA_IMPORT
        assert navigation.predecessor(WizardState(), S.RATE_PERIODS) == S.INVENTORY_CHOICE
        assert navigation.predecessor(manual, S.REVIEW_LAUNCH) == S.FEATURE_TRIAGE

    def test_import_then_manual_route(self):
        state = WizardState(inventory_path=InventoryPath.IMPORT)
        assert navigation.inventory_steps(state) == (S.DATA_IMPORT,)
        state.blocks["data_import"] = Draft(DataImportSummary(skipped=True))
        assert navigation.inventory_steps(state) == (S.DATA_IMPORT, S.SITE_CLASSES, S.SITES_BUILDER)

    def test_active_route_never_contains_both_tails(self):
        state = WizardState(inventory_path=InventoryPath.MANUAL)
        route = navigation.active_route(state)
        assert S.DATA_IMPORT not in route
        assert S.GUIDED_SETUP not in route
        assert route[-1] == S.REVIEW_LAUNCH

    def test_first_incomplete_defaults_to_review(self):
        state = WizardState(
            inventory_path=InventoryPath.MANUAL,
            completed_steps=list(navigation.active_route(WizardState(inventory_path=InventoryPath.MANUAL))),
        )
        assert navigation.first_incomplete(state) == S.REVIEW_LAUNCH


@pytest.mark.unit
class TestHydration:
    """The init latch and the intake queue."""

    def test_hydrates_once(self):
        controller = WizardController()
        assert not controller.hydrated
        assert controller.hydrate({"currentStep": "tax_rules"}) is True
        assert controller.current_step == S.TAX_RULES

        assert controller.hydrate({"currentStep": "park_profile"}) is False
        assert controller.current_step == S.TAX_RULES

    def test_refetch_does_not_clobber_local_edits(self):
        controller = controller_at(S.PARK_PROFILE)
        controller.advance()
        controller.hydrate({"currentStep": "park_profile", "completedSteps": []})
        assert controller.current_step == S.OPERATIONAL_HOURS
        assert controller.completed_steps == [S.PARK_PROFILE]

    def test_updates_before_hydration_wait(self):
        controller = WizardController()
        applied = []
        controller.enqueue(lambda c: applied.append(c.current_step))
        assert applied == []

        controller.hydrate({"currentStep": "stripe_connect"})
        assert applied == [S.STRIPE_CONNECT]

    def test_queued_updates_apply_in_order(self):
        controller = WizardController()
        order = []
        controller.enqueue(lambda c: order.append("first"))
        controller.enqueue(lambda c: order.append("second"))
        controller.hydrate({})
        assert order == ["first", "second"]

    def test_enqueue_after_hydration_applies_now(self):
        controller = controller_at(S.PARK_PROFILE)
        applied = []
        controller.enqueue(lambda c: applied.append(True))
        assert applied == [True]

    def test_account_connected_before_load(self):
        controller = WizardController()
        controller.enqueue(lambda c: c.mark_account_connected())
        controller.hydrate({"currentStep": "stripe_connect", "completedSteps": ["park_profile", "operational_hours"]})
        assert controller.current_step == S.INVENTORY_CHOICE
        assert S.STRIPE_CONNECT in controller.completed_steps


@pytest.mark.unit
class TestTransitions:

    def test_advance_marks_completed(self):
        controller = controller_at(S.PARK_PROFILE)
        assert controller.advance() == S.OPERATIONAL_HOURS
        assert controller.completed_steps == [S.PARK_PROFILE]
        assert controller.state.direction == Direction.FORWARD

    def test_completed_steps_are_unique(self):
        controller = controller_at(S.PARK_PROFILE, completed=[S.PARK_PROFILE])
        controller.advance()
        assert controller.completed_steps == [S.PARK_PROFILE]

    def test_advance_from_inventory_choice_requires_path(self):
        controller = controller_at(S.INVENTORY_CHOICE)
        with pytest.raises(BranchNotChosenError):
            controller.advance()
        assert controller.current_step == S.INVENTORY_CHOICE
        assert S.INVENTORY_CHOICE not in controller.completed_steps

    def test_manual_branch(self):
        controller = controller_at(S.INVENTORY_CHOICE)
        controller.choose_inventory_path("manual")
        assert isinstance(controller.state.block("inventory"), Draft)
        assert controller.state.value("inventory") == InventoryChoice(path="manual")
        assert controller.advance() == S.SITE_CLASSES
        assert controller.advance() == S.SITES_BUILDER
        assert controller.advance() == S.RATE_PERIODS

    def test_import_then_skip_goes_to_site_classes(self):
        controller = controller_at(S.INVENTORY_CHOICE, completed=[S.PARK_PROFILE, S.OPERATIONAL_HOURS, S.STRIPE_CONNECT])
        controller.choose_inventory_path(InventoryPath.IMPORT)
        assert controller.advance() == S.DATA_IMPORT

        assert controller.skip_data_import() == S.SITE_CLASSES
        assert controller.current_step == S.SITE_CLASSES
        assert S.DATA_IMPORT in controller.completed_steps

        assert controller.go_back() == S.DATA_IMPORT
        controller.jump_to(S.SITE_CLASSES)
        assert controller.advance() == S.SITES_BUILDER
        assert controller.advance() == S.RATE_PERIODS
        assert controller.go_back() == S.SITES_BUILDER

    def test_skip_import_only_from_data_import(self):
        controller = controller_at(S.PARK_PROFILE)
        with pytest.raises(StepNotReachableError):
            controller.skip_data_import()
        assert controller.current_step == S.PARK_PROFILE
        assert controller.state.inventory_path == InventoryPath.UNSET
        assert S.DATA_IMPORT not in controller.completed_steps
        assert controller.state.block("data_import") == NOT_STARTED

        controller = controller_at(S.INVENTORY_CHOICE)
        with pytest.raises(StepNotReachableError):
            controller.skip_data_import()
        assert controller.current_step == S.INVENTORY_CHOICE

    def test_import_completed_goes_to_rate_periods(self):
        controller = controller_at(S.DATA_IMPORT, inventory_path=InventoryPath.IMPORT)
        assert controller.advance() == S.RATE_PERIODS
        assert controller.go_back() == S.DATA_IMPORT
        assert controller.state.direction == Direction.BACKWARD

    def test_guided_setup_only_with_setup_now(self):
        controller = with_triage(controller_at(S.FEATURE_TRIAGE), store="setup_later")
        assert controller.advance() == S.REVIEW_LAUNCH

        controller = with_triage(controller_at(S.FEATURE_TRIAGE), store="setup_now", groups="skip")
        assert controller.advance() == S.GUIDED_SETUP
        assert controller.guided_features() == ["store"]

    def test_complete_step_not_current(self):
        controller = controller_at(S.RATES_SETUP)
        assert controller.complete_step(S.TEAM_SETUP) == S.RATES_SETUP
        assert S.TEAM_SETUP in controller.completed_steps

    def test_go_back_from_first_step(self):
        controller = controller_at(S.PARK_PROFILE)
        assert controller.go_back() is None
        assert controller.current_step == S.PARK_PROFILE


@pytest.mark.unit
class TestJump:

    def test_jump_to_completed_step(self):
        controller = controller_at(S.TAX_RULES, completed=[S.PARK_PROFILE, S.OPERATIONAL_HOURS])
        assert controller.jump_to("operational_hours") == S.OPERATIONAL_HOURS
        assert controller.state.direction == Direction.BACKWARD

    def test_jump_to_first_incomplete(self):
        controller = controller_at(S.PARK_PROFILE, completed=[S.PARK_PROFILE])
        controller.jump_to(S.PARK_PROFILE)
        assert controller.jump_to(S.OPERATIONAL_HOURS) == S.OPERATIONAL_HOURS
        assert controller.state.direction == Direction.FORWARD

    def test_jump_accepts_legacy_key(self):
        controller = controller_at(S.OPERATIONAL_HOURS, completed=[S.PARK_PROFILE])
        assert controller.jump_to("account_profile") == S.PARK_PROFILE

    @pytest.mark.parametrize("target", ["review_launch", "bogus", 3])
    def test_jump_to_unreachable(self, target):
        controller = controller_at(S.OPERATIONAL_HOURS, completed=[S.PARK_PROFILE])
        with pytest.raises(StepNotReachableError):
            controller.jump_to(target)
        assert controller.current_step == S.OPERATIONAL_HOURS


@pytest.mark.unit
class TestGuidedSetup:

    def _at_guided(self, *features):
        controller = with_triage(
            controller_at(S.FEATURE_TRIAGE), **{f: "setup_now" for f in features}
        )
        controller.advance()
        return controller

    def test_completing_every_feature_finishes_step(self):
        controller = self._at_guided("store", "groups")
        assert controller.complete_feature("store") is False
        assert controller.defer_feature("groups") is True
        assert controller.current_step == S.REVIEW_LAUNCH
        progress = controller.state.value("guided_setup")
        assert progress.completed_features == ["store"]
        assert progress.skipped_features == ["groups"]

    def test_skip_remaining(self):
        controller = self._at_guided("store", "groups", "utilities")
        controller.complete_feature("store")
        assert controller.skip_remaining_features() is True
        assert controller.current_step == S.REVIEW_LAUNCH
        assert controller.state.value("guided_setup").skipped_features == ["groups", "utilities"]


@pytest.mark.unit
class TestExit:

    def test_exit_only_from_review(self):
        controller = controller_at(S.TAX_RULES)
        with pytest.raises(StepNotReachableError):
            controller.exit()
        assert not controller.state.finished

    def test_exit_is_one_way(self):
        controller = controller_at(S.REVIEW_LAUNCH)
        controller.exit()
        assert controller.state.finished
        assert S.REVIEW_LAUNCH in controller.completed_steps

        with pytest.raises(WizardClosedError):
            controller.go_back()
        with pytest.raises(WizardClosedError):
            controller.jump_to(S.PARK_PROFILE)
        with pytest.raises(WizardClosedError):
            controller.advance()


@pytest.mark.unit
class TestAccountConnected:

    def test_connected_while_viewing_advances(self):
        controller = controller_at(S.STRIPE_CONNECT)
        controller.mark_account_connected("acct_1")
        assert controller.current_step == S.INVENTORY_CHOICE
        assert controller.state.value("stripe") == StripeConnectStatus(connected=True, account_id="acct_1")
        assert controller.account_connected()

    def test_connected_elsewhere_only_marks_completed(self):
        controller = controller_at(S.RATES_SETUP)
        controller.mark_account_connected()
        assert controller.current_step == S.RATES_SETUP
        assert S.STRIPE_CONNECT in controller.completed_steps
