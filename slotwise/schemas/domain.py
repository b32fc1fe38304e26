"""
Domain Schemas

Pydantic models for the scheduling domain: locations, zones, rules, slot
templates, generated slots, bookings, customer preferences and per-shop
configuration.

Immutable catalog objects (Location, Zone, Rule, SlotTemplate, Slot) are
frozen; the only mutable scheduling state is the booked count, which lives
in the capacity ledger, and the Booking record owned by the booking service.
"""


from datetime import date, datetime, time, timedelta, timezone
from typing import Annotated, Dict, FrozenSet, List, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from slotwise.constants import thresholds
from slotwise.core.errors import ConfigurationError, issues_from_pydantic

FulfillmentType = Literal["delivery", "pickup"]

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_HTTP_URL = TypeAdapter(HttpUrl)


def normalize_postcode(postcode: str) -> str:
    """Trim, upper-case and strip inner whitespace so "sw1a 1aa" == "SW1A1AA"."""
    return "".join(postcode.split()).upper()


# ============================================================================
# Geography
# ============================================================================

class Coordinates(BaseModel):
    """A (latitude, longitude) pair in decimal degrees."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


class Address(BaseModel):
    """Customer address as far as scheduling needs it."""
    postcode: str = Field(..., min_length=2, max_length=10, description="Postal code")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    model_config = ConfigDict(frozen=True)

    @field_validator("postcode")
    @classmethod
    def _strip_postcode(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("postcode is too short")
        return value

    @property
    def normalized_postcode(self) -> str:
        return normalize_postcode(self.postcode)

    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class Location(BaseModel):
    """A fulfilling store/depot owned by a shop."""
    id: str
    shop_id: str
    name: str
    address: str = ""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    timezone: str = Field("UTC", description="IANA timezone name")
    supports_delivery: bool = True
    supports_pickup: bool = True
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    def supports(self, fulfillment_type: str) -> bool:
        if fulfillment_type == "delivery":
            return self.supports_delivery
        return self.supports_pickup


# ============================================================================
# Zones
# ============================================================================

class PostcodeRangeCoverage(BaseModel):
    """Inclusive range over normalized postcode strings."""
    kind: Literal["postcode_range"] = "postcode_range"
    start: str
    end: str

    model_config = ConfigDict(frozen=True)

    def contains(self, postcode: str) -> bool:
        return normalize_postcode(self.start) <= postcode <= normalize_postcode(self.end)


class PostcodeListCoverage(BaseModel):
    """Explicit postcode set."""
    kind: Literal["postcode_list"] = "postcode_list"
    postcodes: List[str] = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    def contains(self, postcode: str) -> bool:
        return any(normalize_postcode(p) == postcode for p in self.postcodes)


class RadiusCoverage(BaseModel):
    """Everything within radius_km of a location."""
    kind: Literal["radius"] = "radius"
    location_id: str
    radius_km: float = Field(..., gt=0)

    model_config = ConfigDict(frozen=True)


ZoneCoverage = Annotated[
    Union[PostcodeRangeCoverage, PostcodeListCoverage, RadiusCoverage],
    Field(discriminator="kind"),
]


class Zone(BaseModel):
    """Coverage definition linking addresses to fulfilling locations."""
    id: str
    shop_id: str
    name: str = ""
    coverage: ZoneCoverage
    excluded_postcodes: List[str] = Field(default_factory=list)
    priority: int = 0
    fulfillment_types: FrozenSet[FulfillmentType] = frozenset({"delivery", "pickup"})
    location_ids: List[str] = Field(..., min_length=1)
    created_at: datetime
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC so zones stay comparable
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def excludes(self, postcode: str) -> bool:
        return any(normalize_postcode(p) == postcode for p in self.excluded_postcodes)


# ============================================================================
# Rules and Templates
# ============================================================================

class Rule(BaseModel):
    """
    Scheduling rule scoped to exactly one zone or one location.

    Fields left as None are "not set" and inherit from the other scope.
    """
    id: str
    zone_id: Optional[str] = None
    location_id: Optional[str] = None
    cutoff_time: Optional[time] = Field(None, description="Same-day ordering cutoff (local time)")
    lead_time_hours: Optional[int] = Field(None, ge=0)
    lead_time_days: Optional[int] = Field(None, ge=0)
    blackout_dates: Optional[FrozenSet[date]] = None
    slot_duration_minutes: Optional[int] = Field(None, gt=0)
    slot_capacity: Optional[int] = Field(None, ge=1)
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _single_scope(self) -> "Rule":
        if (self.zone_id is None) == (self.location_id is None):
            raise ValueError("rule must be scoped to exactly one of zone_id or location_id")
        return self

    @property
    def lead_time(self) -> Optional[timedelta]:
        if self.lead_time_hours is None and self.lead_time_days is None:
            return None
        return timedelta(days=self.lead_time_days or 0, hours=self.lead_time_hours or 0)


class EffectiveRule(BaseModel):
    """Merged rule set (location overrides zone) applied to one location."""
    cutoff_time: Optional[time] = None
    lead_time: timedelta = timedelta(0)
    blackout_dates: FrozenSet[date] = frozenset()
    slot_duration_minutes: Optional[int] = None
    slot_capacity: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class SlotTemplate(BaseModel):
    """Recurring weekly window at a location."""
    id: str
    location_id: str
    day_of_week: int = Field(..., ge=0, le=6, description="0=Monday ... 6=Sunday")
    start_time: time
    end_time: time
    duration_minutes: Optional[int] = Field(None, gt=0)
    capacity: Optional[int] = Field(None, ge=1)
    fulfillment_type: FulfillmentType = "delivery"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _ordered_window(self) -> "SlotTemplate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


# ============================================================================
# Slots and Bookings
# ============================================================================

def slot_identity(location_id: str, fulfillment_type: str, slot_date: date, start: time, end: time) -> str:
    """Deterministic slot id; regeneration from the same inputs yields the same id."""
    return f"{location_id}:{fulfillment_type}:{slot_date.isoformat()}:{start.strftime('%H%M')}-{end.strftime('%H%M')}"


class Slot(BaseModel):
    """A generated, capacity-bounded window at a location on a date."""
    id: str
    location_id: str
    date: date
    time_start: time
    time_end: time
    fulfillment_type: FulfillmentType = "delivery"
    capacity: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True)

    def starts_at(self, tz: ZoneInfo) -> datetime:
        return datetime.combine(self.date, self.time_start, tzinfo=tz)

    @property
    def weekday_name(self) -> str:
        return WEEKDAY_NAMES[self.date.weekday()]


BookingStatus = Literal["scheduled", "updated", "canceled"]


class Booking(BaseModel):
    """Links one order to one slot; version increases on every change."""
    order_id: str
    shop_id: str
    slot_id: str
    location_id: str
    fulfillment_type: FulfillmentType
    delivery_address: Optional[Address] = None
    status: BookingStatus = "scheduled"
    version: int = Field(1, ge=1)
    was_recommended: bool = False
    scheduled_at: datetime
    updated_at: datetime


class ScheduledDelivery(BaseModel):
    """Another order's delivery, used for route-efficiency scoring."""
    date: date
    time_start: time
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = ConfigDict(frozen=True)


# ============================================================================
# Customers
# ============================================================================

class CustomerPreferences(BaseModel):
    """Learned or declared scheduling preferences for a customer."""
    customer_id: str
    preferred_days: List[str] = Field(default_factory=list, description="Weekday names, e.g. 'Saturday'")
    preferred_times: List[str] = Field(default_factory=list, description="Windows formatted HH:MM-HH:MM")
    preferred_location_ids: List[str] = Field(default_factory=list)
    total_orders: int = 0
    last_order_at: Optional[datetime] = None


# ============================================================================
# Shop Configuration
# ============================================================================

class Weights(BaseModel):
    """Relative weight of each recommendation factor (normalized by their sum)."""
    capacity_weight: float = Field(thresholds.DEFAULT_CAPACITY_WEIGHT, ge=0, allow_inf_nan=False)
    distance_weight: float = Field(thresholds.DEFAULT_DISTANCE_WEIGHT, ge=0, allow_inf_nan=False)
    route_efficiency_weight: float = Field(thresholds.DEFAULT_ROUTE_EFFICIENCY_WEIGHT, ge=0, allow_inf_nan=False)
    personalization_weight: float = Field(thresholds.DEFAULT_PERSONALIZATION_WEIGHT, ge=0, allow_inf_nan=False)

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> float:
        return (
            self.capacity_weight
            + self.distance_weight
            + self.route_efficiency_weight
            + self.personalization_weight
        )


class ShopConfig(BaseModel):
    """
    Per-shop configuration consumed by the core.

    Passed explicitly into every call; never stored as process-wide state.
    """
    shop_id: str
    weights: Weights = Field(default_factory=Weights)
    recommendations_enabled: bool = True
    top_k_slots: int = Field(thresholds.DEFAULT_TOP_K_SLOTS, ge=0)
    top_k_locations: int = Field(thresholds.DEFAULT_TOP_K_LOCATIONS, ge=0)
    max_distance_km: float = Field(thresholds.DEFAULT_MAX_DISTANCE_KM, gt=0, allow_inf_nan=False)
    webhook_url: Optional[str] = None
    webhook_secret: str = ""
    retry_ceiling: int = Field(thresholds.DEFAULT_RETRY_CEILING, ge=1)
    retry_backoff_seconds: float = Field(thresholds.DEFAULT_RETRY_BACKOFF_SECONDS, ge=0, allow_inf_nan=False)
    horizon_days: int = Field(14, ge=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("webhook_url")
    @classmethod
    def _parseable_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            _HTTP_URL.validate_python(value)
        except PydanticValidationError as exc:
            raise ValueError(f"webhook_url is not a valid http(s) URL: {exc.errors()[0]['msg']}") from exc
        return value

    @model_validator(mode="after")
    def _webhook_needs_secret(self) -> "ShopConfig":
        if self.webhook_url and not self.webhook_secret:
            raise ValueError("webhook_secret is required when webhook_url is set")
        return self


def load_shop_config(data: dict) -> ShopConfig:
    """
    Validate raw shop configuration at the boundary.

    Raises:
        ConfigurationError: with field-level details when any value is invalid
    """
    try:
        return ShopConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration for shop {data.get('shop_id', '?')}",
            details=issues_from_pydantic(exc.errors()),
        ) from exc




# ============================================================================
# Shop Catalog Snapshot
# ============================================================================

class ShopCatalog(BaseModel):
    """
    Read-only snapshot of one shop's scheduling catalog.

    Replaced wholesale on change, so concurrent readers always see a
    consistent set of zones, rules and templates.
    """
    config: ShopConfig
    locations: Dict[str, Location] = Field(default_factory=dict)
    zones: List[Zone] = Field(default_factory=list)
    rules: List[Rule] = Field(default_factory=list)
    templates: List[SlotTemplate] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def shop_id(self) -> str:
        return self.config.shop_id

    def location(self, location_id: str) -> Optional[Location]:
        return self.locations.get(location_id)

    def active_zones(self) -> List[Zone]:
        return [zone for zone in self.zones if zone.is_active]

    def active_locations(self) -> List[Location]:
        return [loc for _, loc in sorted(self.locations.items()) if loc.is_active]
