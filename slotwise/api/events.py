"""
Recommendation Analytics Endpoints

Endpoints:
- POST /events/recommendation-viewed - Candidates shown to a customer
- POST /events/recommendation-selected - The candidate the customer picked

Both append to the recommendation log and emit the matching analytics
event to the shop's webhook. Selections with a customerId also update that
customer's preferences.
"""

import logging

from fastapi import APIRouter, Depends

from slotwise.api.deps import get_services, get_shop_id
from slotwise.schemas.booking import (
    EventAck,
    RecommendationSelectedRequest,
    RecommendationViewedRequest,
)
from slotwise.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post("/recommendation-viewed", response_model=EventAck)
async def recommendation_viewed(
    body: RecommendationViewedRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    services.scheduling.record_view(
        shop_id,
        body.session_id,
        body.candidates,
        customer_id=body.customer_id,
    )
    return EventAck(message=f"Recorded view of {len(body.candidates)} candidates")


@router.post("/recommendation-selected", response_model=EventAck)
async def recommendation_selected(
    body: RecommendationSelectedRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    selected = body.selected
    services.scheduling.record_selection(
        shop_id,
        body.session_id,
        selection_type=selected.type,
        selection_id=selected.id,
        was_recommended=selected.was_recommended,
        customer_id=body.customer_id,
        alternatives_shown=body.alternatives_shown,
        candidates=body.candidates,
    )
    logger.info(f"Selection {selected.type}:{selected.id} recommended={selected.was_recommended}")
    return EventAck(message="Selection recorded")
