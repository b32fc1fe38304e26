"""
Eligibility Evaluator

Decides whether an address can be served on a candidate date, and by which
zone and location. Pure: reads a ShopCatalog snapshot and the caller's
"now", never mutates anything, safe to call from many threads at once.

Evaluation order:
1. Coverage match: postcode list, postcode range (normalized string compare)
   or radius around a location (needs address coordinates)
2. Exclusion lists win over inclusion
3. Fulfillment type filter (zone and location must both serve it)
4. Single zone pick: priority desc, created_at desc, id desc
5. Effective rule per location (location fields override zone fields),
   then same-day cutoff, lead time and blackout checks

Usage:
    from slotwise.algorithms.eligibility import evaluate, EligibilityRequest

    outcome = evaluate(EligibilityRequest(...), catalog)
    if not outcome.eligible:
        print(outcome.reason)
"""

import logging
from datetime import date, datetime, time
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slotwise.algorithms.geo import haversine_km
from slotwise.core.errors import IneligibleError
from slotwise.schemas.domain import (
    Address,
    EffectiveRule,
    FulfillmentType,
    Location,
    RadiusCoverage,
    Rule,
    ShopCatalog,
    Zone,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Reasons
# ============================================================================

NO_MATCHING_ZONE = "no_matching_zone"
EXCLUDED_POSTCODE = "excluded_postcode"
FULFILLMENT_TYPE_UNSUPPORTED = "fulfillment_type_unsupported"
PAST_CUTOFF = "past_cutoff"
BEFORE_LEAD_TIME = "before_lead_time"
BLACKOUT_DATE = "blackout_date"

IneligibleReason = Literal[
    "no_matching_zone",
    "excluded_postcode",
    "fulfillment_type_unsupported",
    "past_cutoff",
    "before_lead_time",
    "blackout_date",
]


# ============================================================================
# Request / Outcome
# ============================================================================

class EligibilityRequest(BaseModel):
    """Inputs for one eligibility decision."""
    address: Address
    fulfillment_type: FulfillmentType
    candidate_date: date
    now: datetime = Field(..., description="Timezone-aware evaluation instant")
    candidate_start: Optional[time] = Field(None, description="Slot start, when checking a concrete slot")
    location_id: Optional[str] = Field(None, description="Restrict to one location")

    model_config = ConfigDict(frozen=True)

    @field_validator("now")
    @classmethod
    def _aware_now(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        return value


class Eligible(BaseModel):
    eligible: Literal[True] = True
    zone: Zone
    location: Location
    rule: EffectiveRule

    model_config = ConfigDict(frozen=True)


class Ineligible(BaseModel):
    eligible: Literal[False] = False
    reason: IneligibleReason
    zone: Optional[Zone] = None

    model_config = ConfigDict(frozen=True)


EligibilityOutcome = Union[Eligible, Ineligible]


class PostcodeCoverage(BaseModel):
    """Date-independent coverage summary for a postcode."""
    eligible: bool
    reason: Optional[IneligibleReason] = None
    zone_id: Optional[str] = None
    services: Dict[str, bool] = Field(default_factory=lambda: {"delivery": False, "pickup": False})
    locations: List[Location] = Field(default_factory=list)


# ============================================================================
# Rule Resolution
# ============================================================================

_RULE_FIELDS = ("cutoff_time", "blackout_dates", "slot_duration_minutes", "slot_capacity")


def resolve_effective_rule(rules: List[Rule], zone_id: Optional[str], location_id: str) -> EffectiveRule:
    """
    Merge zone- and location-scoped rules field by field.

    A field set on any active location rule replaces the zone's value;
    within a scope the lowest rule id that sets a field wins.
    """
    location_rules = sorted(
        (r for r in rules if r.is_active and r.location_id == location_id), key=lambda r: r.id
    )
    zone_rules = sorted(
        (r for r in rules if r.is_active and zone_id is not None and r.zone_id == zone_id),
        key=lambda r: r.id,
    )
    ordered = location_rules + zone_rules

    merged = {}
    for field in _RULE_FIELDS:
        for rule in ordered:
            value = getattr(rule, field)
            if value is not None:
                merged[field] = value
                break

    for rule in ordered:
        if rule.lead_time is not None:
            merged["lead_time"] = rule.lead_time
            break

    return EffectiveRule(**merged)


def check_rule(
    rule: EffectiveRule,
    candidate_date: date,
    now: datetime,
    location: Location,
    candidate_start: Optional[time] = None,
) -> Optional[str]:
    """
    Apply cutoff, lead time and blackout checks in the location's timezone.

    Returns:
        The first failing reason, or None when the date is bookable
    """
    tz = location.tz
    local_now = now.astimezone(tz)

    if (
        rule.cutoff_time is not None
        and candidate_date == local_now.date()
        and local_now.time() > rule.cutoff_time
    ):
        return PAST_CUTOFF

    # Without a concrete start the whole day counts; any moment before the
    # earliest bookable instant is inside the lead time
    candidate_moment = datetime.combine(candidate_date, candidate_start or time.max, tzinfo=tz)
    if candidate_moment < local_now + rule.lead_time:
        return BEFORE_LEAD_TIME

    if candidate_date in rule.blackout_dates:
        return BLACKOUT_DATE

    return None


# ============================================================================
# Zone Selection
# ============================================================================

def _covers(zone: Zone, address: Address, catalog: ShopCatalog) -> bool:
    coverage = zone.coverage
    if isinstance(coverage, RadiusCoverage):
        point = address.coordinates()
        center = catalog.location(coverage.location_id)
        if point is None or center is None or center.coordinates() is None:
            return False
        return haversine_km(
            point.latitude, point.longitude, center.latitude, center.longitude
        ) <= coverage.radius_km
    return coverage.contains(address.normalized_postcode)


def _usable_locations(
    zone: Zone,
    catalog: ShopCatalog,
    fulfillment_type: str,
    location_id: Optional[str] = None,
) -> List[Location]:
    locations = []
    for loc_id in sorted(zone.location_ids):
        if location_id is not None and loc_id != location_id:
            continue
        location = catalog.location(loc_id)
        if location is None or not location.is_active or not location.supports(fulfillment_type):
            continue
        locations.append(location)
    return locations


def select_zone(
    catalog: ShopCatalog,
    address: Address,
    fulfillment_type: str,
    location_id: Optional[str] = None,
) -> Tuple[Optional[Zone], Optional[str]]:
    """
    Pick the single winning zone for an address.

    Returns:
        (zone, None) on success, (None, reason) otherwise
    """
    postcode = address.normalized_postcode
    matched = [zone for zone in catalog.active_zones() if _covers(zone, address, catalog)]
    if location_id is not None:
        matched = [zone for zone in matched if location_id in zone.location_ids]
    if not matched:
        return None, NO_MATCHING_ZONE

    included = [zone for zone in matched if not zone.excludes(postcode)]
    if not included:
        return None, EXCLUDED_POSTCODE

    serving = [
        zone for zone in included
        if fulfillment_type in zone.fulfillment_types
        and _usable_locations(zone, catalog, fulfillment_type, location_id)
    ]
    if not serving:
        return None, FULFILLMENT_TYPE_UNSUPPORTED

    zone = max(serving, key=lambda z: (z.priority, z.created_at, z.id))
    return zone, None


# ============================================================================
# Public API
# ============================================================================

def evaluate(request: EligibilityRequest, catalog: ShopCatalog) -> EligibilityOutcome:
    """
    Decide eligibility for one (address, fulfillment type, date).

    Args:
        request: Address, fulfillment type, candidate date and "now"
        catalog: The shop's catalog snapshot

    Returns:
        Eligible(zone, location, rule) or Ineligible(reason)
    """
    zone, reason = select_zone(catalog, request.address, request.fulfillment_type, request.location_id)
    if zone is None:
        logger.debug(f"Ineligible postcode={request.address.postcode} reason={reason}")
        return Ineligible(reason=reason)

    first_reason = None
    for location in _usable_locations(zone, catalog, request.fulfillment_type, request.location_id):
        rule = resolve_effective_rule(catalog.rules, zone.id, location.id)
        failure = check_rule(rule, request.candidate_date, request.now, location, request.candidate_start)
        if failure is None:
            return Eligible(zone=zone, location=location, rule=rule)
        if first_reason is None:
            first_reason = failure

    logger.debug(
        f"Ineligible zone={zone.id} date={request.candidate_date} reason={first_reason}"
    )
    return Ineligible(reason=first_reason, zone=zone)


def require_eligible(request: EligibilityRequest, catalog: ShopCatalog) -> Eligible:
    """
    Evaluate and raise on rejection.

    Raises:
        IneligibleError: carrying the rejection reason verbatim
    """
    outcome = evaluate(request, catalog)
    if isinstance(outcome, Ineligible):
        raise IneligibleError(outcome.reason)
    return outcome


def check_postcode(
    catalog: ShopCatalog,
    address: Address,
    fulfillment_type: Optional[FulfillmentType] = None,
) -> PostcodeCoverage:
    """
    Report which services and locations cover a postcode, ignoring dates.

    Args:
        catalog: The shop's catalog snapshot
        address: Postcode with optional coordinates
        fulfillment_type: Restrict eligibility to one service type

    Returns:
        PostcodeCoverage with per-service availability
    """
    services = {"delivery": False, "pickup": False}
    locations: Dict[str, Location] = {}
    zone_id = None
    first_reason = None

    for service in ("delivery", "pickup"):
        zone, reason = select_zone(catalog, address, service)
        if zone is None:
            if fulfillment_type in (None, service) and first_reason is None:
                first_reason = reason
            continue
        services[service] = True
        if fulfillment_type in (None, service):
            zone_id = zone_id or zone.id
            for location in _usable_locations(zone, catalog, service):
                locations.setdefault(location.id, location)

    eligible = services[fulfillment_type] if fulfillment_type else any(services.values())
    return PostcodeCoverage(
        eligible=eligible,
        reason=None if eligible else first_reason,
        zone_id=zone_id,
        services=services,
        locations=[locations[key] for key in sorted(locations)],
    )
