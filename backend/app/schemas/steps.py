"""Pydantic models for the per-step domain data of the onboarding wizard.

These are the codec layer that sits between untrusted persisted JSON and the
typed wizard state.  They are deliberately strict:

  - primitive types must match exactly (no "55" → 55 coercion, no bool → int)
  - enum-like fields are closed Literal sets
  - list fields are validated element by element
  - unknown keys are ignored (older sessions carry extra fields such as `id`
    or `slug` that belong to the server)

Field names are snake_case in Python and camelCase on the wire, matching the
envelope written by the web client.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StepModel(BaseModel):
    model_config = ConfigDict(
        strict=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ── Park profile ─────────────────────────────────────────────

class CampgroundProfile(StepModel):
    name: str
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address1: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    timezone: str | None = None
    # Assigned by the server on first save; never set client-side.
    slug: str | None = None
    id: str | None = None


# ── Operational hours ────────────────────────────────────────

class OperationalHours(StepModel):
    check_in_time: str
    check_out_time: str
    quiet_hours_enabled: bool = False
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    check_in_window_enabled: bool = False
    check_in_window_start: str | None = None
    check_in_window_end: str | None = None


# ── Payments (account link) ──────────────────────────────────

class StripeConnectStatus(StepModel):
    connected: bool
    account_id: str | None = None


# ── Inventory branch ─────────────────────────────────────────

class InventoryChoice(StepModel):
    path: Literal["import", "manual"]


class MissingRequired(StepModel):
    key: str
    missing_fields: list[str] = []


class DataImportSummary(StepModel):
    import_system_key: str | None = None
    override_accepted: bool | None = None
    required_complete: bool | None = None
    missing_required: list[MissingRequired] | None = None
    sites_created: int | None = None
    site_classes_created: int | None = None
    skipped: bool = False


class SiteClass(StepModel):
    """A bookable class of sites.

    `id` is optional: sessions written before classes were persisted as real
    records carry no id, and the reconciler gives those a positional
    placeholder (`temp-<index>`).
    """
    id: str | None = None
    name: str
    site_type: Literal["rv", "tent", "cabin", "glamping"]
    rental_type: Literal["transient", "seasonal", "flexible"] = "transient"
    rv_orientation: Literal["back_in", "pull_through"] | None = None
    electric_amps: list[int] = []
    equipment_types: list[str] = []
    slide_outs_accepted: str | None = None
    hookups_water: bool = False
    hookups_sewer: bool = False
    default_rate: float
    max_occupancy: int = 6
    pet_friendly: bool = True
    occupants_included: int = 2
    extra_adult_fee: float | None = None
    extra_child_fee: float | None = None
    amenity_tags: list[str] = []
    photos: list[str] = []
    metered_enabled: bool = False
    metered_type: str | None = None
    metered_billing_mode: str | None = None


class Site(StepModel):
    id: str | None = None
    name: str
    site_number: str
    site_class_id: str
    rig_max_length: int | None = None
    power_amps: int | None = None


# ── Pricing ──────────────────────────────────────────────────

class DateRange(StepModel):
    start_date: str  # YYYY-MM-DD
    end_date: str


class RatePeriod(StepModel):
    id: str
    name: str
    icon: str | None = None
    date_ranges: list[DateRange] = []
    is_default: bool = False


class SiteClassRate(StepModel):
    site_class_id: str
    nightly_rate: float
    weekly_rate: float | None = None
    monthly_rate: float | None = None
    period_rates: dict[str, float] = {}


class AddOnItem(StepModel):
    id: str
    name: str
    price_cents: int
    pricing_type: Literal["flat", "per_night", "per_person"]


class GlCodes(StepModel):
    site_revenue: str | None = None
    booking_fees: str | None = None
    pet_fees: str | None = None
    store_sales: str | None = None
    late_fees: str | None = None


class FeesAndAddons(StepModel):
    # None means "no fee" and is distinct from a missing key.
    booking_fee_cents: int | None
    site_lock_fee_cents: int | None
    pet_fee_enabled: bool
    pet_fee_cents: int | None
    pet_fee_type: Literal["per_pet_per_night", "flat"] = "per_pet_per_night"
    add_on_items: list[AddOnItem] = []
    gl_codes: GlCodes | None = None


class TaxRule(StepModel):
    name: str
    type: Literal["percentage", "flat"]
    rate: float


# ── Policies ─────────────────────────────────────────────────

class DepositPolicy(StepModel):
    strategy: Literal["none", "first_night", "first_night_fees", "percent", "half", "full"]
    value: float | None = None
    apply_to: Literal["lodging_only", "lodging_plus_fees"] = "lodging_only"
    due_timing: Literal["at_booking", "before_arrival"] = "at_booking"


class BookingRules(StepModel):
    # None means no advance-booking limit.
    advance_booking_days: int | None
    min_nights: int
    long_term_enabled: bool = False
    long_term_min_nights: int | None = None
    long_term_auto_apply: bool | None = None


class CancellationRule(StepModel):
    id: str
    days_before_arrival: int
    fee_type: Literal["flat", "percent", "nights", "full"]
    fee_amount: float
    applies_to: list[str] = []


class WaiversDocuments(StepModel):
    require_waiver: bool
    waiver_timing: Literal["before_arrival", "at_checkin"] | None = None
    waiver_content: str | None = None
    use_default_waiver: bool | None = None
    require_park_rules_ack: bool = False
    require_vehicle_form: bool = False
    require_pet_policy: bool = False


class ParkRules(StepModel):
    use_template: bool
    template_id: str | None = None
    custom_rules: str | None = None
    require_signature: bool = False
    enforcement: Literal["pre_booking", "pre_checkin", "informational"] = "informational"


# ── Team & communication ────────────────────────────────────

class TeamMember(StepModel):
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: Literal["owner", "manager", "front_desk", "maintenance", "finance", "readonly"] = "front_desk"


class PreArrivalReminder(StepModel):
    days: int
    enabled: bool
    description: str = ""


class CommunicationSettings(StepModel):
    use_custom_domain: bool = False
    custom_domain: str | None = None
    send_confirmation: bool = True
    pre_arrival_reminders: list[PreArrivalReminder] = []
    send_post_stay: bool = False
    enable_nps_survey: bool = False
    nps_send_hour: int | None = None


class Integrations(StepModel):
    accounting: Literal["quickbooks", "xero", "none"] | None = None
    channel_manager: str | None = None
    connected: list[str] = []
    requested: list[str] = []


# ── Personalisation ──────────────────────────────────────────

ParkType = Literal[
    "small_rv", "medium_rv", "large_rv", "tent", "mixed",
    "cabin_glamping", "seasonal", "mobile",
]
OperationType = Literal[
    "reservations", "seasonals", "store", "utilities",
    "activities", "housekeeping", "groups", "marketing",
]
TeamSize = Literal["solo", "small_team", "medium_team", "large_team"]
AmenityType = Literal[
    "recreation", "camp_store", "laundry", "event_space",
    "food_service", "wifi", "dump_station", "water_access",
]
TechLevel = Literal["tech_savvy", "basic", "mixed"]


class QuizAnswers(StepModel):
    park_type: ParkType
    operations: list[OperationType] = []
    team_size: TeamSize
    amenities: list[AmenityType] = []
    tech_level: TechLevel | None = None


class FeatureRecommendations(StepModel):
    setup_now: list[str] = []
    setup_later: list[str] = []
    skipped: list[str] = []


class SmartQuizResult(StepModel):
    answers: QuizAnswers | None = None
    recommendations: FeatureRecommendations
    completed: bool = False


TriageStatus = Literal["setup_now", "setup_later", "skip"]


class FeatureTriage(StepModel):
    selections: dict[str, TriageStatus] = {}
    completed: bool = False

    def setup_now(self) -> list[str]:
        return [k for k, v in self.selections.items() if v == "setup_now"]


class GuidedSetupProgress(StepModel):
    completed_features: list[str] = []
    skipped_features: list[str] = []
    current_feature_index: int = 0
