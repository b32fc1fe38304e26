"""
Recommendation Scorer

Deterministic, explainable ranking of eligible slots and pickup locations.

No ML and no randomness: identical inputs (weights and "now" included)
always give identical scores, order and recommended set.

Factors (each in [0, 1]):
- capacity: step function over utilization (booked / capacity)
- distance: 1 - km / max_distance_km, km rounded to one decimal first
- route_efficiency: mean distance to other deliveries on the same date
  within +/- 2 hours, scored like distance; 1.0 when there are none
- personalization: preferred weekday +0.3, preferred time window +0.2;
  for locations 1.0 if previously used else 0.3

A factor that does not apply to a candidate (route efficiency for pickup,
distance without coordinates, personalization without preferences) is left
out of both the weighted sum and the weight total. It is never scored as 0.

Usage:
    from slotwise.algorithms.recommendation import score_slots

    ranking = score_slots(candidates, config, customer=CustomerContext(...))
    for slot in ranking.slots:
        print(slot.slot_id, slot.recommendation_score, slot.reason)
"""

import asyncio
import logging
from datetime import date, time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from slotwise.algorithms.geo import distance_km, distance_score, mean_distance_km
from slotwise.constants import thresholds
from slotwise.core.errors import ValidationError, issues_from_pydantic
from slotwise.schemas.domain import (
    WEEKDAY_NAMES,
    Coordinates,
    CustomerPreferences,
    FulfillmentType,
    ScheduledDelivery,
    ShopConfig,
    Weights,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Factors
# ============================================================================

CAPACITY = "capacity"
DISTANCE = "distance"
ROUTE_EFFICIENCY = "route_efficiency"
PERSONALIZATION = "personalization"

# Fixed order; also breaks ties when picking the dominant factor
FACTOR_ORDER = (CAPACITY, DISTANCE, ROUTE_EFFICIENCY, PERSONALIZATION)

SLOT_REASONS = {
    CAPACITY: "Most available capacity",
    DISTANCE: "Closest location",
    ROUTE_EFFICIENCY: "Efficient delivery route",
    PERSONALIZATION: "Matches your preferences",
}

LOCATION_REASONS = {
    CAPACITY: "Most available capacity",
    DISTANCE: "Closest location",
    PERSONALIZATION: "Your preferred location",
}

STRATEGY_WEIGHTED = "weighted_score"
STRATEGY_CHRONOLOGICAL = "chronological_fallback"


def factor_weights(weights: Weights) -> Dict[str, float]:
    return {
        CAPACITY: weights.capacity_weight,
        DISTANCE: weights.distance_weight,
        ROUTE_EFFICIENCY: weights.route_efficiency_weight,
        PERSONALIZATION: weights.personalization_weight,
    }


# ============================================================================
# Inputs
# ============================================================================

class SlotCandidate(BaseModel):
    """An eligible, non-full slot offered for ranking."""
    slot_id: str = Field(..., min_length=1)
    date: date
    time_start: time
    time_end: time
    location_id: str = Field(..., min_length=1)
    fulfillment_type: FulfillmentType = "delivery"
    capacity: int = Field(..., ge=1)
    booked_count: int = Field(0, ge=0)
    location_latitude: Optional[float] = Field(None, ge=-90, le=90)
    location_longitude: Optional[float] = Field(None, ge=-180, le=180)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _within_capacity(self) -> "SlotCandidate":
        if self.booked_count > self.capacity:
            raise ValueError("booked_count exceeds capacity")
        if self.time_end <= self.time_start:
            raise ValueError("time_end must be after time_start")
        return self

    @property
    def capacity_remaining(self) -> int:
        return self.capacity - self.booked_count

    def location_coordinates(self) -> Optional[Coordinates]:
        if self.location_latitude is None or self.location_longitude is None:
            return None
        return Coordinates(latitude=self.location_latitude, longitude=self.location_longitude)


class LocationCandidate(BaseModel):
    """A pickup/delivery location offered for ranking."""
    location_id: str = Field(..., min_length=1)
    name: str = ""
    address: str = ""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    available_capacity: int = Field(0, ge=0)
    total_capacity: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True)

    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class CustomerContext(BaseModel):
    """Optional per-customer context; every field may be missing."""
    coordinates: Optional[Coordinates] = None
    preferences: Optional[CustomerPreferences] = None


# ============================================================================
# Outputs
# ============================================================================

class ScoredSlot(BaseModel):
    slot_id: str
    date: date
    time_start: time
    time_end: time
    location_id: str
    fulfillment_type: FulfillmentType
    capacity: int
    capacity_remaining: int
    recommendation_score: Optional[float] = None
    recommended: bool = False
    reason: Optional[str] = None
    factors: Dict[str, float] = Field(default_factory=dict)


class ScoredLocation(BaseModel):
    location_id: str
    name: str
    address: str
    distance_km: Optional[float] = None
    available_capacity: int
    total_capacity: int
    recommendation_score: Optional[float] = None
    recommended: bool = False
    reason: Optional[str] = None
    factors: Dict[str, float] = Field(default_factory=dict)


class SlotRanking(BaseModel):
    slots: List[ScoredSlot]
    strategy: str = STRATEGY_WEIGHTED


class LocationRanking(BaseModel):
    locations: List[ScoredLocation]
    strategy: str = STRATEGY_WEIGHTED


# ============================================================================
# Sub-scores
# ============================================================================

def capacity_score(booked_count: int, capacity: int) -> float:
    """
    Step function over utilization.

    Example:
        >>> capacity_score(19, 20)   # 95% booked
        0.2
        >>> capacity_score(4, 10)    # 40% booked
        1.0
    """
    utilization = booked_count / capacity if capacity > 0 else 1.0
    for lower_bound, score in thresholds.CAPACITY_SCORE_STEPS:
        if utilization >= lower_bound:
            return score
    return thresholds.CAPACITY_SCORE_OPEN


def _parse_window(window: str) -> Optional[Tuple[time, time]]:
    try:
        start_text, end_text = window.split("-", 1)
        start = time.fromisoformat(start_text.strip())
        end = time.fromisoformat(end_text.strip())
    except ValueError:
        return None
    if end <= start:
        return None
    return start, end


def slot_personalization_score(
    slot: SlotCandidate, preferences: CustomerPreferences
) -> float:
    score = 0.0
    if WEEKDAY_NAMES[slot.date.weekday()] in preferences.preferred_days:
        score += thresholds.PREFERRED_DAY_BONUS
    for window in preferences.preferred_times:
        parsed = _parse_window(window)
        if parsed and parsed[0] < slot.time_end and slot.time_start < parsed[1]:
            score += thresholds.PREFERRED_TIME_BONUS
            break
    return max(0.0, min(1.0, score))


def location_personalization_score(location_id: str, preferences: CustomerPreferences) -> float:
    if location_id in preferences.preferred_location_ids:
        return thresholds.PREVIOUS_LOCATION_SCORE
    return thresholds.OTHER_LOCATION_SCORE


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def route_efficiency_score(
    slot: SlotCandidate,
    origin: Optional[Coordinates],
    deliveries: Sequence[ScheduledDelivery],
    max_distance_km: float,
) -> Optional[float]:
    """
    Cluster score against other deliveries on the same date within the route window.

    No neighbours scores 1.0 whatever the origin; neighbours without a
    customer origin leave the factor out (None).
    """
    neighbours = [
        Coordinates(latitude=d.latitude, longitude=d.longitude)
        for d in deliveries
        if d.date == slot.date
        and d.latitude is not None
        and d.longitude is not None
        and abs(_minutes(d.time_start) - _minutes(slot.time_start)) <= thresholds.ROUTE_WINDOW_MINUTES
    ]
    if not neighbours:
        return thresholds.ROUTE_SCORE_NO_NEIGHBOURS
    if origin is None:
        return None
    mean = mean_distance_km(origin, neighbours)
    return distance_score(mean, max_distance_km)


# ============================================================================
# Combination
# ============================================================================

def combine(factors: Dict[str, float], weights: Weights) -> float:
    """
    Weighted mean over the applicable factors only.

    Zero total applicable weight falls back to the plain mean; no
    applicable factor at all gives the neutral score.
    """
    if not factors:
        return thresholds.NEUTRAL_SCORE
    by_name = factor_weights(weights)
    total_weight = sum(by_name[name] for name in factors)
    if total_weight <= 0:
        score = sum(factors.values()) / len(factors)
    else:
        score = sum(value * by_name[name] for name, value in factors.items()) / total_weight
    return round(max(0.0, min(1.0, score)), thresholds.SCORE_DECIMALS)


def dominant_factor(factors: Dict[str, float], weights: Weights) -> Optional[str]:
    """Factor with the highest weighted contribution; FACTOR_ORDER breaks ties."""
    if not factors:
        return None
    by_name = factor_weights(weights)
    use_weights = sum(by_name[name] for name in factors) > 0
    best = None
    best_value = -1.0
    for name in FACTOR_ORDER:
        if name not in factors:
            continue
        value = factors[name] * by_name[name] if use_weights else factors[name]
        if value > best_value:
            best, best_value = name, value
    return best


# ============================================================================
# Validation
# ============================================================================

def _validate(model, items: Sequence[Any], field: str) -> list:
    validated = []
    issues = []
    for index, item in enumerate(items):
        if isinstance(item, model):
            validated.append(item)
            continue
        try:
            validated.append(model.model_validate(item))
        except PydanticValidationError as exc:
            issues.extend(issues_from_pydantic(exc.errors(), prefix=f"{field}[{index}]"))
    if issues:
        raise ValidationError(f"Malformed {field}", details=issues)
    return validated


def validate_slot_candidates(candidates: Sequence[Union[SlotCandidate, Dict[str, Any]]]) -> List[SlotCandidate]:
    """
    Raises:
        ValidationError: with one {field, issue} per malformed candidate field
    """
    return _validate(SlotCandidate, candidates, "candidates")


def validate_location_candidates(
    candidates: Sequence[Union[LocationCandidate, Dict[str, Any]]]
) -> List[LocationCandidate]:
    return _validate(LocationCandidate, candidates, "candidates")


# ============================================================================
# Public API
# ============================================================================

def score_slots(
    candidates: Sequence[Union[SlotCandidate, Dict[str, Any]]],
    config: ShopConfig,
    customer: Optional[CustomerContext] = None,
    other_deliveries: Optional[Sequence[ScheduledDelivery]] = None,
) -> SlotRanking:
    """
    Score and rank slot candidates.

    Args:
        candidates: Eligible, non-full slots (models or raw dicts)
        config: Shop configuration (weights, top-K, max distance)
        customer: Optional coordinates and preferences
        other_deliveries: Other scheduled deliveries for route efficiency

    Returns:
        SlotRanking sorted by score desc, start asc, slot id asc; the
        first top_k_slots carry recommended=True and a reason

    Raises:
        ValidationError: a candidate is missing or has a malformed required field
    """
    slots = validate_slot_candidates(candidates)
    customer = customer or CustomerContext()
    deliveries = list(other_deliveries or [])
    origin = customer.coordinates

    scored = []
    for slot in slots:
        factors = {CAPACITY: capacity_score(slot.booked_count, slot.capacity)}

        if slot.fulfillment_type == "delivery":
            location_point = slot.location_coordinates()
            if origin is not None and location_point is not None:
                factors[DISTANCE] = distance_score(distance_km(origin, location_point), config.max_distance_km)
            route = route_efficiency_score(slot, origin, deliveries, config.max_distance_km)
            if route is not None:
                factors[ROUTE_EFFICIENCY] = route

        if customer.preferences is not None:
            factors[PERSONALIZATION] = slot_personalization_score(slot, customer.preferences)

        scored.append(ScoredSlot(
            slot_id=slot.slot_id,
            date=slot.date,
            time_start=slot.time_start,
            time_end=slot.time_end,
            location_id=slot.location_id,
            fulfillment_type=slot.fulfillment_type,
            capacity=slot.capacity,
            capacity_remaining=slot.capacity_remaining,
            recommendation_score=combine(factors, config.weights),
            factors={name: round(value, thresholds.SCORE_DECIMALS) for name, value in factors.items()},
        ))

    scored.sort(key=lambda s: (-s.recommendation_score, s.date, s.time_start, s.slot_id))

    for item in scored[:config.top_k_slots]:
        item.recommended = True
        factor = dominant_factor(item.factors, config.weights)
        item.reason = SLOT_REASONS.get(factor) if factor else None

    logger.debug(f"Scored {len(scored)} slots, top_k={config.top_k_slots}")
    return SlotRanking(slots=scored)


def score_locations(
    candidates: Sequence[Union[LocationCandidate, Dict[str, Any]]],
    config: ShopConfig,
    customer: Optional[CustomerContext] = None,
) -> LocationRanking:
    """
    Score and rank location candidates.

    Returns:
        LocationRanking sorted by score desc, location id asc; the first
        top_k_locations carry recommended=True and a reason
    """
    locations = validate_location_candidates(candidates)
    customer = customer or CustomerContext()
    origin = customer.coordinates

    scored = []
    for location in locations:
        factors = {}
        km = None
        point = location.coordinates()
        if origin is not None and point is not None:
            km = distance_km(origin, point)
            factors[DISTANCE] = distance_score(km, config.max_distance_km)
        if location.total_capacity > 0:
            booked = max(0, location.total_capacity - location.available_capacity)
            factors[CAPACITY] = capacity_score(booked, location.total_capacity)
        if customer.preferences is not None:
            factors[PERSONALIZATION] = location_personalization_score(location.location_id, customer.preferences)

        scored.append(ScoredLocation(
            location_id=location.location_id,
            name=location.name,
            address=location.address,
            distance_km=km,
            available_capacity=location.available_capacity,
            total_capacity=location.total_capacity,
            recommendation_score=combine(factors, config.weights),
            factors={name: round(value, thresholds.SCORE_DECIMALS) for name, value in factors.items()},
        ))

    scored.sort(key=lambda s: (-s.recommendation_score, s.location_id))

    for item in scored[:config.top_k_locations]:
        item.recommended = True
        factor = dominant_factor(item.factors, config.weights)
        item.reason = LOCATION_REASONS.get(factor) if factor else None

    return LocationRanking(locations=scored)


# ============================================================================
# Deadline-bounded Scoring
# ============================================================================

def chronological_slots(candidates: Sequence[SlotCandidate]) -> SlotRanking:
    """Unscored fallback: earliest first, no recommended flags."""
    ordered = sorted(candidates, key=lambda s: (s.date, s.time_start, s.slot_id))
    return SlotRanking(
        slots=[
            ScoredSlot(
                slot_id=s.slot_id,
                date=s.date,
                time_start=s.time_start,
                time_end=s.time_end,
                location_id=s.location_id,
                fulfillment_type=s.fulfillment_type,
                capacity=s.capacity,
                capacity_remaining=s.capacity_remaining,
            )
            for s in ordered
        ],
        strategy=STRATEGY_CHRONOLOGICAL,
    )


def unranked_locations(candidates: Sequence[LocationCandidate]) -> LocationRanking:
    ordered = sorted(candidates, key=lambda c: c.location_id)
    return LocationRanking(
        locations=[
            ScoredLocation(
                location_id=c.location_id,
                name=c.name,
                address=c.address,
                available_capacity=c.available_capacity,
                total_capacity=c.total_capacity,
            )
            for c in ordered
        ],
        strategy=STRATEGY_CHRONOLOGICAL,
    )


async def score_slots_within(
    deadline_ms: int,
    candidates: Sequence[Union[SlotCandidate, Dict[str, Any]]],
    config: ShopConfig,
    customer: Optional[CustomerContext] = None,
    other_deliveries: Optional[Sequence[ScheduledDelivery]] = None,
) -> SlotRanking:
    """
    Run score_slots in a worker thread bounded by deadline_ms.

    On timeout the already-validated candidates come back in chronological
    order with strategy "chronological_fallback".
    """
    slots = validate_slot_candidates(candidates)
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(score_slots, slots, config, customer, other_deliveries),
            timeout=deadline_ms / 1000,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Slot scoring exceeded {deadline_ms}ms, falling back to chronological order")
        return chronological_slots(slots)


async def score_locations_within(
    deadline_ms: int,
    candidates: Sequence[Union[LocationCandidate, Dict[str, Any]]],
    config: ShopConfig,
    customer: Optional[CustomerContext] = None,
) -> LocationRanking:
    """Location counterpart of score_slots_within."""
    locations = validate_location_candidates(candidates)
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(score_locations, locations, config, customer),
            timeout=deadline_ms / 1000,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Location scoring exceeded {deadline_ms}ms, returning unranked locations")
        return unranked_locations(locations)
