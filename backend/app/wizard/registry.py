"""Step registry — the ordered, static catalog of onboarding steps.

Used for progress display, jump-navigation bounds checking, and the
server-side progress calculation.  Ordinals follow the linear spine with
both branch blocks inlined in the order a user would meet them:

    park_profile → … → inventory_choice → data_import | site_classes →
    sites_builder → rate_periods → … → feature_triage → guided_setup →
    review_launch
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class StepKey(str, enum.Enum):
    PARK_PROFILE = "park_profile"
    OPERATIONAL_HOURS = "operational_hours"
    STRIPE_CONNECT = "stripe_connect"
    INVENTORY_CHOICE = "inventory_choice"
    DATA_IMPORT = "data_import"
    SITE_CLASSES = "site_classes"
    SITES_BUILDER = "sites_builder"
    RATE_PERIODS = "rate_periods"
    RATES_SETUP = "rates_setup"
    FEES_AND_ADDONS = "fees_and_addons"
    TAX_RULES = "tax_rules"
    DEPOSIT_POLICY = "deposit_policy"
    BOOKING_RULES = "booking_rules"
    CANCELLATION_RULES = "cancellation_rules"
    WAIVERS_DOCUMENTS = "waivers_documents"
    PARK_RULES = "park_rules"
    TEAM_SETUP = "team_setup"
    COMMUNICATION_SETUP = "communication_setup"
    INTEGRATIONS = "integrations"
    MENU_SETUP = "menu_setup"
    FEATURE_DISCOVERY = "feature_discovery"
    SMART_QUIZ = "smart_quiz"
    FEATURE_TRIAGE = "feature_triage"
    GUIDED_SETUP = "guided_setup"
    REVIEW_LAUNCH = "review_launch"


@dataclass(frozen=True)
class StepDefinition:
    """Display metadata for a single step."""

    key: StepKey
    title: str
    description: str
    ordinal: int


_CATALOG: tuple[tuple[StepKey, str, str], ...] = (
    (StepKey.PARK_PROFILE, "Park Profile", "Name, contact details and location of your park"),
    (StepKey.OPERATIONAL_HOURS, "Operational Hours", "Check-in, check-out and quiet hours"),
    (StepKey.STRIPE_CONNECT, "Accept Payments", "Connect a payment account to take bookings"),
    (StepKey.INVENTORY_CHOICE, "Your Inventory", "Import existing data or build it by hand"),
    (StepKey.DATA_IMPORT, "Import Data", "Bring sites and classes over from your old system"),
    (StepKey.SITE_CLASSES, "Site Classes", "Group your sites into bookable classes"),
    (StepKey.SITES_BUILDER, "Sites", "Add the individual sites for each class"),
    (StepKey.RATE_PERIODS, "Rate Periods", "Define seasons and special date ranges"),
    (StepKey.RATES_SETUP, "Rates", "Nightly rates for each site class"),
    (StepKey.FEES_AND_ADDONS, "Fees & Add-ons", "Booking fees, pet fees and extras"),
    (StepKey.TAX_RULES, "Taxes", "Lodging and sales taxes"),
    (StepKey.DEPOSIT_POLICY, "Deposits", "How much guests pay up front"),
    (StepKey.BOOKING_RULES, "Booking Rules", "Advance booking window and minimum stays"),
    (StepKey.CANCELLATION_RULES, "Cancellations", "Cancellation fees by notice period"),
    (StepKey.WAIVERS_DOCUMENTS, "Waivers & Documents", "Waivers and forms guests must sign"),
    (StepKey.PARK_RULES, "Park Rules", "Rules guests acknowledge before arrival"),
    (StepKey.TEAM_SETUP, "Team", "Invite staff and assign roles"),
    (StepKey.COMMUNICATION_SETUP, "Guest Communication", "Confirmations, reminders and surveys"),
    (StepKey.INTEGRATIONS, "Integrations", "Accounting and channel connections"),
    (StepKey.MENU_SETUP, "Menu", "Pin the pages you use most"),
    (StepKey.FEATURE_DISCOVERY, "Feature Tour", "A quick look at what the platform can do"),
    (StepKey.SMART_QUIZ, "Quick Quiz", "Tell us about your park to get recommendations"),
    (StepKey.FEATURE_TRIAGE, "Pick Features", "Choose what to set up now or later"),
    (StepKey.GUIDED_SETUP, "Guided Setup", "Walk through the features you picked"),
    (StepKey.REVIEW_LAUNCH, "Review & Launch", "Check everything and go live"),
)

STEPS: tuple[StepDefinition, ...] = tuple(
    StepDefinition(key=key, title=title, description=description, ordinal=i)
    for i, (key, title, description) in enumerate(_CATALOG)
)

STEP_ORDER: tuple[StepKey, ...] = tuple(s.key for s in STEPS)
TOTAL_STEPS = len(STEPS)

_BY_KEY: dict[str, StepDefinition] = {s.key.value: s for s in STEPS}


def first_step() -> StepKey:
    return STEP_ORDER[0]


def last_step() -> StepKey:
    return STEP_ORDER[-1]


def is_known_step(value: Any) -> bool:
    """True only for a StepKey or the exact string value of one."""
    if isinstance(value, StepKey):
        return True
    return isinstance(value, str) and value in _BY_KEY


def to_step_key(value: Any) -> StepKey | None:
    """Return the StepKey for `value`, or None if it is not a registry member."""
    if isinstance(value, StepKey):
        return value
    if isinstance(value, str) and value in _BY_KEY:
        return StepKey(value)
    return None


def get_step(key: StepKey | str) -> StepDefinition:
    """Look up a step definition; raises KeyError for unknown keys."""
    value = key.value if isinstance(key, StepKey) else key
    return _BY_KEY[value]


def ordinal(key: StepKey | str) -> int:
    return get_step(key).ordinal
