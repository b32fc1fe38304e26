"""
Recommendation API Endpoints

Endpoints:
- POST /recommendations/slots - Ranked, labeled delivery/pickup slots
- POST /recommendations/locations - Ranked pickup locations

Both return 403 recommendations_disabled when the shop has switched
recommendations off and 422 ineligible when no zone serves the address.
"""

import logging

from fastapi import APIRouter, Depends

from slotwise.algorithms.recommendation import ScoredLocation, ScoredSlot
from slotwise.api.deps import current_trace_id, get_services, get_shop_id
from slotwise.schemas.base import DateRange, ResponseMeta
from slotwise.schemas.domain import Address
from slotwise.schemas.recommend import (
    FactorBreakdown,
    LocationRecommendationItem,
    LocationRecommendationRequest,
    LocationRecommendationResponse,
    SlotRecommendationItem,
    SlotRecommendationRequest,
    SlotRecommendationResponse,
    build_address,
)
from slotwise.services.container import Services
from slotwise.services.scheduling import LocationQuery, SlotQuery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


# ============================================================================
# Mapping
# ============================================================================

def _slot_item(slot: ScoredSlot) -> SlotRecommendationItem:
    return SlotRecommendationItem(
        slot_id=slot.slot_id,
        date=slot.date,
        time_start=slot.time_start.strftime("%H:%M"),
        time_end=slot.time_end.strftime("%H:%M"),
        recommendation_score=slot.recommendation_score,
        recommended=slot.recommended,
        reason=slot.reason,
        capacity_remaining=slot.capacity_remaining,
        capacity=slot.capacity,
        location_id=slot.location_id,
        fulfillment_type=slot.fulfillment_type,
        factors=FactorBreakdown(**slot.factors),
    )


def _location_item(location: ScoredLocation) -> LocationRecommendationItem:
    return LocationRecommendationItem(
        location_id=location.location_id,
        name=location.name,
        address=location.address,
        distance_km=location.distance_km,
        recommendation_score=location.recommendation_score,
        recommended=location.recommended,
        reason=location.reason,
        available_capacity=location.available_capacity,
        total_capacity=location.total_capacity,
        factors=FactorBreakdown(**location.factors),
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/slots", response_model=SlotRecommendationResponse)
async def recommend_slots(
    body: SlotRecommendationRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    """
    Rank the eligible, non-full slots for a postcode.

    Default date range is today plus DEFAULT_HORIZON_DAYS.
    """
    ranking, start, end = await services.scheduling.recommend_slots(
        shop_id,
        SlotQuery(
            address=body.address(),
            fulfillment_type=body.fulfillment_type,
            customer_id=body.customer_id,
            location_id=body.location_id,
            start_date=body.start_date,
            end_date=body.end_date,
            deadline_ms=body.deadline_ms,
        ),
    )
    items = [_slot_item(slot) for slot in ranking.slots]
    logger.info(f"Returning {len(items)} slots ({ranking.strategy})")

    return SlotRecommendationResponse(
        slots=items,
        meta=ResponseMeta(
            total=len(items),
            recommended_count=sum(1 for item in items if item.recommended),
            strategy=ranking.strategy,
            date_range=DateRange(start=start, end=end),
            trace_id=current_trace_id(),
        ),
    )


@router.post("/locations", response_model=LocationRecommendationResponse)
async def recommend_locations(
    body: LocationRecommendationRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    """Rank locations by distance, capacity and the customer's history."""
    delivery = body.delivery_address
    address = None
    if body.postcode:
        address = build_address(body.postcode, delivery)
    elif delivery is not None and delivery.postcode:
        address = Address(postcode=delivery.postcode, latitude=delivery.latitude, longitude=delivery.longitude)

    ranking = await services.scheduling.recommend_locations(
        shop_id,
        LocationQuery(
            address=address,
            latitude=delivery.latitude if delivery else None,
            longitude=delivery.longitude if delivery else None,
            fulfillment_type=body.fulfillment_type,
            customer_id=body.customer_id,
            deadline_ms=body.deadline_ms,
        ),
    )
    items = [_location_item(location) for location in ranking.locations]

    return LocationRecommendationResponse(
        locations=items,
        meta=ResponseMeta(
            total=len(items),
            recommended_count=sum(1 for item in items if item.recommended),
            strategy=ranking.strategy,
            trace_id=current_trace_id(),
        ),
    )
