"""
Event Schemas

Closed set of outbound event kinds, discriminated on event_type.

Booking events:   order.scheduled, order.schedule_updated, order.schedule_canceled
Analytics events: recommendation.viewed, recommendation.selected

Any code that handles an OutboundEvent must handle every variant; the
emitter raises TypeError on anything else.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field

from slotwise.schemas.base import ApiModel
from slotwise.schemas.domain import Address, FulfillmentType


class BookingEventData(ApiModel):
    """Payload shared by all booking events."""
    shop_id: str
    order_id: str
    fulfillment_type: FulfillmentType
    location_id: str
    delivery_address: Optional[Address] = None
    scheduled_at: datetime = Field(..., description="Slot start, ISO 8601 with offset")
    slot_id: str
    meta: Dict[str, Any] = Field(default_factory=dict)


class OrderScheduled(ApiModel):
    event_type: Literal["order.scheduled"] = "order.scheduled"
    data: BookingEventData


class OrderScheduleUpdated(ApiModel):
    event_type: Literal["order.schedule_updated"] = "order.schedule_updated"
    data: BookingEventData
    previous_slot_id: str


class OrderScheduleCanceled(ApiModel):
    event_type: Literal["order.schedule_canceled"] = "order.schedule_canceled"
    data: BookingEventData


class CandidateShown(ApiModel):
    """One slot or location as the customer saw it."""
    id: str
    recommendation_score: Optional[float] = None
    recommended: bool = False


class RecommendationViewed(ApiModel):
    event_type: Literal["recommendation.viewed"] = "recommendation.viewed"
    shop_id: str
    session_id: str
    customer_id: Optional[str] = None
    candidates: List[CandidateShown] = Field(default_factory=list)
    viewed_at: datetime


class RecommendationSelected(ApiModel):
    event_type: Literal["recommendation.selected"] = "recommendation.selected"
    shop_id: str
    session_id: str
    customer_id: Optional[str] = None
    selection_type: Literal["slot", "location"] = "slot"
    selection_id: str
    was_recommended: bool
    alternatives_shown: List[str] = Field(default_factory=list)
    candidates: List[CandidateShown] = Field(default_factory=list)
    selected_at: datetime


OutboundEvent = Annotated[
    Union[
        OrderScheduled,
        OrderScheduleUpdated,
        OrderScheduleCanceled,
        RecommendationViewed,
        RecommendationSelected,
    ],
    Field(discriminator="event_type"),
]

BookingEvent = Union[OrderScheduled, OrderScheduleUpdated, OrderScheduleCanceled]
