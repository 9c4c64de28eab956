"""Validation guards for untrusted persisted data.

Every data block has a strict pydantic model in app.schemas.steps.  The
guards here never raise: `parse_block` returns the typed value or None,
`matches` is the boolean form.  Nothing upstream reads persisted JSON
without going through one of these.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter, ValidationError

from app.schemas import steps
from app.wizard.registry import is_known_step

BLOCK_SCHEMAS: dict[str, Any] = {
    "campground": steps.CampgroundProfile,
    "operational_hours": steps.OperationalHours,
    "stripe": steps.StripeConnectStatus,
    "inventory": steps.InventoryChoice,
    "data_import": steps.DataImportSummary,
    "site_classes": list[steps.SiteClass],
    "sites": list[steps.Site],
    "rate_periods": list[steps.RatePeriod],
    "rates": list[steps.SiteClassRate],
    "fees_and_addons": steps.FeesAndAddons,
    "tax_rules": list[steps.TaxRule],
    "deposit_policy": steps.DepositPolicy,
    "booking_rules": steps.BookingRules,
    "cancellation_rules": list[steps.CancellationRule],
    "waivers": steps.WaiversDocuments,
    "park_rules": steps.ParkRules,
    "team_members": list[steps.TeamMember],
    "communication": steps.CommunicationSettings,
    "integrations": steps.Integrations,
    "menu_pins": list[str],
    "discovered_features": list[str],
    "smart_quiz": steps.SmartQuizResult,
    "feature_triage": steps.FeatureTriage,
    "guided_setup": steps.GuidedSetupProgress,
}

_ADAPTERS: dict[str, TypeAdapter] = {
    name: TypeAdapter(schema) for name, schema in BLOCK_SCHEMAS.items()
}


def parse_block(name: str, value: Any) -> Any:
    """Parse `value` as the named block, or return None if it does not match.

    Unknown block names also return None.
    """
    adapter = _ADAPTERS.get(name)
    if adapter is None or value is None:
        return None
    try:
        return adapter.validate_python(value, strict=True)
    except ValidationError:
        return None


def matches(name: str, value: Any) -> bool:
    return parse_block(name, value) is not None


# ── Primitive guards ─────────────────────────────────────────

def is_str(value: Any) -> bool:
    return isinstance(value, str)


def is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def is_step_key(value: Any) -> bool:
    return is_known_step(value)
