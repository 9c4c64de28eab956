"""Legacy key mapper — translates obsolete step keys and storage locations.

Two tables live here:

  LEGACY_STEP_KEYS  obsolete step identifier → current identifier
  DATA_BLOCKS       for every block of per-step domain data, the ordered
                    list of places it may be stored in a persisted session

The current nested location (`data.<step>.<subKey>`) is always probed
first; legacy locations follow.  Older sessions are never rewritten until
that step is saved again, so the legacy locations stay readable forever.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from app.wizard.registry import StepKey

LEGACY_STEP_KEYS: dict[str, StepKey] = {
    "account_profile": StepKey.PARK_PROFILE,
    "payment_gateway": StepKey.STRIPE_CONNECT,
    "inventory_sites": StepKey.INVENTORY_CHOICE,
    "rates_and_fees": StepKey.RATES_SETUP,
    "taxes_and_fees": StepKey.TAX_RULES,
    "policies": StepKey.DEPOSIT_POLICY,
    "communications_templates": StepKey.COMMUNICATION_SETUP,
    "imports": StepKey.DATA_IMPORT,
}


def canonical_step_key(value: Any) -> Any:
    """Map a legacy step key onto its current key.

    Unknown keys and non-string values pass through unchanged; callers must
    still check registry membership.
    """
    if isinstance(value, StepKey):
        return value
    if isinstance(value, str) and value in LEGACY_STEP_KEYS:
        return LEGACY_STEP_KEYS[value]
    return value


# ── Storage locations ────────────────────────────────────────

@dataclass(frozen=True)
class DataLocation:
    """A path into the session `data` object.

    With `renames`, the object at `path` is not used directly: the listed
    keys are collected from it into a fresh object under their new names.
    That is how flat legacy fields (`campgroundName`, `phone`, …) are
    assembled into a profile.
    """
    path: tuple[str, ...]
    renames: Mapping[str, str] | None = None

    def read(self, data: Any) -> Any:
        """Return the value stored here, or None when nothing is populated."""
        node = data
        for part in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        if self.renames is None:
            return node
        if not isinstance(node, dict):
            return None
        collected = {new: node[old] for old, new in self.renames.items() if old in node}
        return collected or None


@dataclass(frozen=True)
class DataBlock:
    name: str
    step: StepKey
    sub_key: str
    legacy: tuple[DataLocation, ...] = field(default=())

    @property
    def locations(self) -> tuple[DataLocation, ...]:
        return (DataLocation((self.step.value, self.sub_key)),) + self.legacy


def _at(*path: str) -> DataLocation:
    return DataLocation(tuple(path))


# Flat fields written by the first version of the profile step.
LEGACY_PROFILE_FIELDS: dict[str, str] = {
    "name": "name",
    "campgroundName": "name",
    "phone": "phone",
    "email": "email",
    "website": "website",
    "address1": "address1",
    "city": "city",
    "state": "state",
    "postalCode": "postalCode",
    "country": "country",
    "timezone": "timezone",
}

DATA_BLOCKS: tuple[DataBlock, ...] = (
    DataBlock("campground", StepKey.PARK_PROFILE, "campground", (
        _at("account_profile", "campground"),
        DataLocation(("account_profile",), renames=LEGACY_PROFILE_FIELDS),
        _at("campground"),
        DataLocation((), renames=LEGACY_PROFILE_FIELDS),
    )),
    DataBlock("operational_hours", StepKey.OPERATIONAL_HOURS, "operationalHours", (
        _at("operational_hours"),
        _at("operationalHours"),
    )),
    DataBlock("stripe", StepKey.STRIPE_CONNECT, "stripe", (
        _at("payment_gateway", "stripe"),
        _at("stripe_connect"),
        _at("stripe"),
    )),
    DataBlock("inventory", StepKey.INVENTORY_CHOICE, "inventory", (
        _at("inventory_sites", "inventory"),
        _at("inventory_choice"),
        DataLocation((), renames={"inventoryPath": "path"}),
    )),
    DataBlock("data_import", StepKey.DATA_IMPORT, "summary", (
        _at("imports", "summary"),
        _at("data_import"),
        _at("dataImport"),
    )),
    DataBlock("site_classes", StepKey.SITE_CLASSES, "siteClasses", (
        _at("inventory_sites", "siteClasses"),
        _at("siteClasses"),
    )),
    DataBlock("sites", StepKey.SITES_BUILDER, "sites", (
        _at("inventory_sites", "sites"),
        _at("sites"),
    )),
    DataBlock("rate_periods", StepKey.RATE_PERIODS, "ratePeriods", (
        _at("ratePeriods"),
    )),
    DataBlock("rates", StepKey.RATES_SETUP, "rates", (
        _at("rates_and_fees", "rates"),
        _at("rates"),
    )),
    DataBlock("fees_and_addons", StepKey.FEES_AND_ADDONS, "feesAndAddons", (
        _at("rates_and_fees", "feesAndAddons"),
        _at("fees_and_addons"),
        _at("feesAndAddons"),
    )),
    DataBlock("tax_rules", StepKey.TAX_RULES, "taxRules", (
        _at("taxes_and_fees", "taxRules"),
        _at("taxRules"),
    )),
    DataBlock("deposit_policy", StepKey.DEPOSIT_POLICY, "depositPolicy", (
        _at("policies", "depositPolicy"),
        _at("depositPolicy"),
    )),
    DataBlock("booking_rules", StepKey.BOOKING_RULES, "bookingRules", (
        _at("booking_rules"),
        _at("bookingRules"),
    )),
    DataBlock("cancellation_rules", StepKey.CANCELLATION_RULES, "cancellationRules", (
        _at("policies", "cancellationRules"),
        _at("cancellationRules"),
    )),
    DataBlock("waivers", StepKey.WAIVERS_DOCUMENTS, "waivers", (
        _at("waivers_documents"),
        _at("waiversDocuments"),
    )),
    DataBlock("park_rules", StepKey.PARK_RULES, "parkRules", (
        _at("park_rules"),
        _at("parkRules"),
    )),
    DataBlock("team_members", StepKey.TEAM_SETUP, "teamMembers", (
        _at("teamMembers"),
    )),
    DataBlock("communication", StepKey.COMMUNICATION_SETUP, "communication", (
        _at("communications_templates", "communication"),
        _at("communication_setup"),
        _at("communicationSetup"),
    )),
    DataBlock("integrations", StepKey.INTEGRATIONS, "integrations", (
        _at("integrations"),
    )),
    DataBlock("menu_pins", StepKey.MENU_SETUP, "pinnedPages", (
        _at("pinnedPages"),
    )),
    DataBlock("discovered_features", StepKey.FEATURE_DISCOVERY, "completedFeatures", (
        _at("discoveredFeatures"),
    )),
    DataBlock("smart_quiz", StepKey.SMART_QUIZ, "quiz", (
        _at("smart_quiz"),
        _at("smartQuiz"),
    )),
    DataBlock("feature_triage", StepKey.FEATURE_TRIAGE, "triage", (
        _at("feature_triage"),
        _at("featureTriage"),
    )),
    DataBlock("guided_setup", StepKey.GUIDED_SETUP, "progress", (
        _at("guided_setup"),
        _at("guidedSetup"),
    )),
)

BLOCKS_BY_NAME: dict[str, DataBlock] = {b.name: b for b in DATA_BLOCKS}


def blocks_for_step(step: StepKey) -> tuple[DataBlock, ...]:
    return tuple(b for b in DATA_BLOCKS if b.step == step)


# Flat recommendation buckets written before the quiz stored a full result.
LEGACY_RECOMMENDATION_LOCATIONS: tuple[DataLocation, ...] = (
    DataLocation(("smart_quiz",), renames={"recommendedNow": "setupNow", "recommendedLater": "setupLater"}),
    DataLocation((), renames={"recommendedNow": "setupNow", "recommendedLater": "setupLater"}),
)
