"""Route rules: which step follows or precedes which, given the branches taken.

Pure functions over a WizardState.  The controller uses them to move, the
reconciler uses them to pick a resume point.

Two branch points:

  inventory_choice  import → data_import → rate_periods
                    manual → site_classes → sites_builder → rate_periods
                    (import, then skip → site_classes → sites_builder → …)
  feature_triage    any feature marked "setup_now" → guided_setup
                    otherwise → review_launch
"""

from __future__ import annotations

from app.schemas.steps import DataImportSummary, FeatureTriage
from app.wizard.errors import BranchNotChosenError
from app.wizard.registry import StepKey
from app.wizard.state import InventoryPath, WizardState

S = StepKey

_HEAD: tuple[StepKey, ...] = (
    S.PARK_PROFILE,
    S.OPERATIONAL_HOURS,
    S.STRIPE_CONNECT,
    S.INVENTORY_CHOICE,
)

_MIDDLE: tuple[StepKey, ...] = (
    S.RATE_PERIODS,
    S.RATES_SETUP,
    S.FEES_AND_ADDONS,
    S.TAX_RULES,
    S.DEPOSIT_POLICY,
    S.BOOKING_RULES,
    S.CANCELLATION_RULES,
    S.WAIVERS_DOCUMENTS,
    S.PARK_RULES,
    S.TEAM_SETUP,
    S.COMMUNICATION_SETUP,
    S.INTEGRATIONS,
    S.MENU_SETUP,
    S.FEATURE_DISCOVERY,
    S.SMART_QUIZ,
    S.FEATURE_TRIAGE,
)

_MANUAL_FLOW = (S.SITE_CLASSES, S.SITES_BUILDER)


def setup_now_features(state: WizardState) -> list[str]:
    triage = state.value("feature_triage")
    if isinstance(triage, FeatureTriage):
        return triage.setup_now()
    return []


def import_was_skipped(state: WizardState) -> bool:
    """True when the import path fell through to the manual sub-flow."""
    summary = state.value("data_import")
    if isinstance(summary, DataImportSummary) and summary.skipped:
        return True
    return any(state.is_completed(s) for s in _MANUAL_FLOW) or state.current_step in _MANUAL_FLOW


def inventory_steps(state: WizardState) -> tuple[StepKey, ...]:
    if state.inventory_path == InventoryPath.MANUAL:
        return _MANUAL_FLOW
    if state.inventory_path == InventoryPath.IMPORT:
        if import_was_skipped(state):
            return (S.DATA_IMPORT,) + _MANUAL_FLOW
        return (S.DATA_IMPORT,)
    return ()


def active_route(state: WizardState) -> tuple[StepKey, ...]:
    """Every step the user will visit, in order, given current choices."""
    tail = (S.GUIDED_SETUP, S.REVIEW_LAUNCH) if setup_now_features(state) else (S.REVIEW_LAUNCH,)
    return _HEAD + inventory_steps(state) + _MIDDLE + tail


def first_incomplete(state: WizardState) -> StepKey:
    """First step of the active route not yet completed.

    With no inventory path chosen, inventory_choice is never complete.
    """
    for step in active_route(state):
        if step == S.INVENTORY_CHOICE and state.inventory_path == InventoryPath.UNSET:
            return step
        if not state.is_completed(step):
            return step
    return S.REVIEW_LAUNCH


def successor(state: WizardState, step: StepKey) -> StepKey | None:
    """The step after `step`; None for the terminal step."""
    if step == S.INVENTORY_CHOICE:
        if state.inventory_path == InventoryPath.IMPORT:
            return S.DATA_IMPORT
        if state.inventory_path == InventoryPath.MANUAL:
            return S.SITE_CLASSES
        raise BranchNotChosenError()
    if step == S.DATA_IMPORT:
        return S.RATE_PERIODS
    if step == S.SITE_CLASSES:
        return S.SITES_BUILDER
    if step == S.SITES_BUILDER:
        return S.RATE_PERIODS
    if step == S.FEATURE_TRIAGE:
        return S.GUIDED_SETUP if setup_now_features(state) else S.REVIEW_LAUNCH
    if step == S.GUIDED_SETUP:
        return S.REVIEW_LAUNCH
    if step == S.REVIEW_LAUNCH:
        return None
    spine = _HEAD + _MIDDLE
    return spine[spine.index(step) + 1]


def predecessor(state: WizardState, step: StepKey) -> StepKey | None:
    """The step before `step` on the active route; None for the first step."""
    if step == S.PARK_PROFILE:
        return None
    if step == S.DATA_IMPORT:
        return S.INVENTORY_CHOICE
    if step == S.SITE_CLASSES:
        if state.inventory_path == InventoryPath.IMPORT:
            return S.DATA_IMPORT
        return S.INVENTORY_CHOICE
    if step == S.SITES_BUILDER:
        return S.SITE_CLASSES
    if step == S.RATE_PERIODS:
        if state.inventory_path == InventoryPath.IMPORT:
            if state.is_completed(S.SITES_BUILDER):
                return S.SITES_BUILDER
            return S.DATA_IMPORT
        if state.inventory_path == InventoryPath.MANUAL:
            return S.SITES_BUILDER
        return S.INVENTORY_CHOICE
    if step == S.GUIDED_SETUP:
        return S.FEATURE_TRIAGE
    if step == S.REVIEW_LAUNCH:
        return S.GUIDED_SETUP if setup_now_features(state) else S.FEATURE_TRIAGE
    spine = _HEAD + _MIDDLE
    return spine[spine.index(step) - 1]
