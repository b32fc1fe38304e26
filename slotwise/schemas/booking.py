"""
Booking, Eligibility and Analytics Event Schemas

Request/response bodies for /bookings, /eligibility/check and
/events/recommendation-*.
"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field

from slotwise.schemas.base import ApiModel
from slotwise.schemas.domain import FulfillmentType
from slotwise.schemas.events import CandidateShown
from slotwise.schemas.recommend import DeliveryAddressIn


# ============================================================================
# Bookings
# ============================================================================

class BookingRequest(ApiModel):
    order_id: str = Field(..., min_length=1)
    slot_id: str = Field(..., min_length=1)
    postcode: str = Field(..., min_length=2, max_length=10)
    fulfillment_type: FulfillmentType
    delivery_address: Optional[DeliveryAddressIn] = None
    was_recommended: bool = False


class RescheduleRequest(ApiModel):
    slot_id: str = Field(..., min_length=1)
    expected_version: int = Field(..., ge=1, description="Booking version the caller last read")


class BookingResponse(ApiModel):
    order_id: str
    shop_id: str
    slot_id: str
    location_id: str
    fulfillment_type: FulfillmentType
    status: str
    version: int
    was_recommended: bool
    date: date
    time_start: str
    time_end: str
    scheduled_at: datetime
    updated_at: datetime


# ============================================================================
# Eligibility
# ============================================================================

class EligibilityCheckRequest(ApiModel):
    postcode: str = Field(..., min_length=2, max_length=10)
    fulfillment_type: Optional[FulfillmentType] = None
    check_date: Optional[date] = Field(None, alias="date", description="Also check rules for this date")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class EligibleLocation(ApiModel):
    id: str
    name: str
    address: str
    supports_delivery: bool
    supports_pickup: bool


class EligibilityCheckResponse(ApiModel):
    eligible: bool
    reason: Optional[str] = None
    zone_id: Optional[str] = None
    location_id: Optional[str] = None
    locations: List[EligibleLocation] = Field(default_factory=list)
    services: Dict[str, bool] = Field(default_factory=dict)


# ============================================================================
# Analytics Events
# ============================================================================

class RecommendationViewedRequest(ApiModel):
    session_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    candidates: List[CandidateShown] = Field(default_factory=list)


class SelectedCandidate(ApiModel):
    type: Literal["slot", "location"]
    id: str = Field(..., min_length=1)
    recommendation_score: Optional[float] = None
    was_recommended: bool


class RecommendationSelectedRequest(ApiModel):
    session_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    selected: SelectedCandidate
    alternatives_shown: List[str] = Field(default_factory=list)
    candidates: List[CandidateShown] = Field(default_factory=list)


class EventAck(ApiModel):
    success: bool = True
    message: str
