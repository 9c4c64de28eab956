"""Tests for turning persisted session JSON into a typed WizardState."""

import pytest

from app.schemas.steps import (
    CampgroundProfile,
    FeatureTriage,
    SiteClass,
    SmartQuizResult,
)
from app.wizard.navigation import active_route
from app.wizard.reconciler import reconcile
from app.wizard.registry import StepKey
from app.wizard.state import (
    NOT_STARTED,
    InitState,
    InventoryPath,
    Saved,
    WizardState,
)

RV_CLASS = {
    "name": "RV Full Hookup",
    "siteType": "rv",
    "rentalType": "transient",
    "defaultRate": 55,
    "maxOccupancy": 6,
    "hookupsWater": True,
    "hookupsSewer": True,
    "electricAmps": [30, 50],
}


def envelope(session: dict, progress: dict | None = None) -> dict:
    return {"session": session, "progress": progress or {}}


@pytest.mark.unit
class TestReconcileIsTotal:
    """No input shape may raise."""

    @pytest.mark.parametrize("raw", [
        None,
        42,
        "session",
        [],
        {},
        {"session": None},
        {"session": "x", "progress": 7},
        {"data": "not an object"},
        {"data": {"park_profile": "nope", "site_classes": {"siteClasses": "nope"}}},
        {"currentStep": 12, "completedSteps": "park_profile"},
        {"currentStep": None, "completedSteps": [None, 3, {"a": 1}]},
    ])
    def test_malformed_input_gives_fresh_state(self, raw):
        state = reconcile(raw)
        assert state.current_step == StepKey.PARK_PROFILE
        assert state.completed_steps == []
        assert state.inventory_path == InventoryPath.UNSET
        assert state.init == InitState.HYDRATED
        assert state.block("campground") == NOT_STARTED

    def test_malformed_block_is_absent_not_partial(self):
        state = reconcile({"data": {"booking_rules": {"bookingRules": {"minNights": "2"}}}})
        assert state.block("booking_rules") == NOT_STARTED


@pytest.mark.unit
class TestLegacySessions:

    def test_flat_legacy_profile(self):
        state = reconcile({
            "currentStep": "account_profile",
            "data": {"campgroundName": "Pine Ridge", "phone": "555-0100"},
        })
        assert state.current_step == StepKey.PARK_PROFILE
        profile = state.value("campground")
        assert isinstance(profile, CampgroundProfile)
        assert profile.name == "Pine Ridge"
        assert profile.phone == "555-0100"

    def test_current_location_wins_over_legacy(self):
        state = reconcile({"data": {
            "park_profile": {"campground": {"name": "New Name"}},
            "campgroundName": "Old Name",
        }})
        assert state.value("campground").name == "New Name"

    def test_legacy_step_keys_in_completed(self):
        state = reconcile({"completedSteps": [
            "account_profile", "park_profile", "payment_gateway", "bogus", "policies",
        ]})
        assert state.completed_steps == [
            StepKey.PARK_PROFILE,
            StepKey.STRIPE_CONNECT,
            StepKey.DEPOSIT_POLICY,
        ]

    def test_progress_completed_preferred_over_session(self):
        state = reconcile(envelope(
            {"completedSteps": ["park_profile"]},
            {"completedSteps": ["park_profile", "operational_hours"]},
        ))
        assert state.completed_steps == [StepKey.PARK_PROFILE, StepKey.OPERATIONAL_HOURS]

    def test_legacy_nested_location(self):
        state = reconcile({"data": {"rates_and_fees": {"feesAndAddons": {
            "bookingFeeCents": 300,
            "siteLockFeeCents": None,
            "petFeeEnabled": True,
            "petFeeCents": 200,
        }}}})
        assert state.value("fees_and_addons").booking_fee_cents == 300


@pytest.mark.unit
class TestPlaceholderIds:

    def test_site_class_without_id_gets_temp_id(self):
        state = reconcile({"data": {"site_classes": {"siteClasses": [RV_CLASS]}}})
        classes = state.value("site_classes")
        assert len(classes) == 1
        assert isinstance(classes[0], SiteClass)
        assert classes[0].id == "temp-0"

    def test_real_ids_are_kept(self):
        state = reconcile({"data": {"siteClasses": [
            {**RV_CLASS, "id": "sc_1"},
            {**RV_CLASS, "name": "Tent", "siteType": "tent"},
        ]}})
        assert [c.id for c in state.value("site_classes")] == ["sc_1", "temp-1"]


@pytest.mark.unit
class TestLegacyQuiz:

    def test_flat_recommendations_rebuilt(self):
        state = reconcile({
            "completedSteps": ["smart_quiz"],
            "data": {"recommendedNow": ["store"], "recommendedLater": ["utilities"]},
        })
        quiz = state.value("smart_quiz")
        assert isinstance(quiz, SmartQuizResult)
        assert quiz.recommendations.setup_now == ["store"]
        assert quiz.recommendations.setup_later == ["utilities"]
        assert quiz.recommendations.skipped == []
        assert quiz.completed is True

    def test_full_result_preferred(self):
        state = reconcile({"data": {
            "smart_quiz": {"quiz": {"recommendations": {"setupNow": ["groups"]}, "completed": True}},
            "recommendedNow": ["store"],
        }})
        assert state.value("smart_quiz").recommendations.setup_now == ["groups"]

    def test_malformed_flat_recommendations(self):
        state = reconcile({"data": {"recommendedNow": "store"}})
        assert state.block("smart_quiz") == NOT_STARTED


@pytest.mark.unit
class TestResumeStep:

    def test_explicit_current_step(self):
        state = reconcile({"currentStep": "tax_rules"})
        assert state.current_step == StepKey.TAX_RULES

    def test_unknown_current_step_falls_back(self):
        state = reconcile({"currentStep": "launch_party", "completedSteps": ["park_profile"]})
        assert state.current_step == StepKey.OPERATIONAL_HOURS

    def test_hint_used_when_on_route(self):
        state = reconcile(envelope(
            {"completedSteps": ["park_profile"]},
            {"nextStep": "operational_hours"},
        ))
        assert state.current_step == StepKey.OPERATIONAL_HOURS

    def test_hint_off_route_is_ignored(self):
        # Manual path: the server's data_import hint does not apply.
        state = reconcile(envelope(
            {
                "completedSteps": ["park_profile", "operational_hours", "stripe_connect", "inventory_choice"],
                "data": {"inventory_choice": {"inventory": {"path": "manual"}}},
            },
            {"nextStep": "data_import"},
        ))
        assert state.inventory_path == InventoryPath.MANUAL
        assert state.current_step == StepKey.SITE_CLASSES

    def test_import_path_resumes_after_data_import(self):
        state = reconcile({
            "completedSteps": [
                "park_profile", "operational_hours", "stripe_connect", "inventory_choice", "data_import",
            ],
            "data": {"inventory_choice": {"inventory": {"path": "import"}}},
        })
        assert state.inventory_path == InventoryPath.IMPORT
        assert state.current_step == StepKey.RATE_PERIODS
        assert StepKey.SITE_CLASSES not in active_route(state)

    def test_import_path_ignores_site_classes_hint(self):
        session = {
            "completedSteps": ["park_profile", "operational_hours", "stripe_connect", "inventory_choice"],
            "data": {"inventory_choice": {"inventory": {"path": "import"}}},
        }
        state = reconcile(envelope(session, {"nextStep": "site_classes"}))
        assert state.current_step == StepKey.DATA_IMPORT

        session["completedSteps"] = session["completedSteps"] + ["data_import"]
        state = reconcile(envelope(session, {"nextStep": "site_classes"}))
        assert state.current_step == StepKey.RATE_PERIODS

    def test_skipped_import_resumes_at_site_classes(self):
        state = reconcile(envelope(
            {
                "completedSteps": [
                    "park_profile", "operational_hours", "stripe_connect", "inventory_choice", "data_import",
                ],
                "data": {
                    "inventory_choice": {"inventory": {"path": "import"}},
                    "data_import": {"summary": {"skipped": True}},
                },
            },
            {"nextStep": "site_classes"},
        ))
        assert state.current_step == StepKey.SITE_CLASSES

    def test_inventory_choice_incomplete_without_path(self):
        state = reconcile({"completedSteps": [
            "park_profile", "operational_hours", "stripe_connect", "inventory_choice",
        ]})
        assert state.current_step == StepKey.INVENTORY_CHOICE

    def test_triage_without_setup_now_skips_guided(self):
        state = reconcile({
            "completedSteps": ["feature_triage"],
            "data": {"feature_triage": {"triage": {"selections": {"store": "setup_later"}}}},
        })
        assert isinstance(state.value("feature_triage"), FeatureTriage)
        assert StepKey.GUIDED_SETUP not in active_route(state)


@pytest.mark.unit
class TestPriorState:

    def test_inventory_path_carried_from_prior(self):
        prior = WizardState(inventory_path=InventoryPath.IMPORT)
        state = reconcile({}, prior=prior)
        assert state.inventory_path == InventoryPath.IMPORT

    def test_saved_choice_beats_prior(self):
        prior = WizardState(inventory_path=InventoryPath.IMPORT)
        state = reconcile({"data": {"inventory_choice": {"inventory": {"path": "manual"}}}}, prior=prior)
        assert state.inventory_path == InventoryPath.MANUAL
        assert isinstance(state.block("inventory"), Saved)
