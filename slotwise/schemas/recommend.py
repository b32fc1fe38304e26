"""
Recommendation Schemas

Request/response bodies for POST /recommendations/slots and
POST /recommendations/locations.
"""

from datetime import date
from typing import List, Optional

from pydantic import Field, model_validator

from slotwise.schemas.base import ApiModel, ResponseMeta
from slotwise.schemas.domain import Address, FulfillmentType


class DeliveryAddressIn(ApiModel):
    """Optional customer coordinates (and postcode override)."""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    postcode: Optional[str] = Field(None, min_length=2, max_length=10)


def build_address(postcode: str, delivery_address: Optional[DeliveryAddressIn]) -> Address:
    """Merge the top-level postcode with optional delivery coordinates."""
    if delivery_address is None:
        return Address(postcode=postcode)
    return Address(
        postcode=delivery_address.postcode or postcode,
        latitude=delivery_address.latitude,
        longitude=delivery_address.longitude,
    )


# ============================================================================
# Slots
# ============================================================================

class SlotRecommendationRequest(ApiModel):
    postcode: str = Field(..., min_length=2, max_length=10, description="Customer postcode")
    cart_items: List[str] = Field(default_factory=list, description="Cart line identifiers")
    customer_id: Optional[str] = Field(None, description="Enables personalization")
    fulfillment_type: FulfillmentType
    delivery_address: Optional[DeliveryAddressIn] = None
    location_id: Optional[str] = Field(None, description="Restrict to one location")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    deadline_ms: Optional[int] = Field(None, gt=0, description="Scoring deadline in milliseconds")

    def address(self) -> Address:
        return build_address(self.postcode, self.delivery_address)


class FactorBreakdown(ApiModel):
    """Sub-scores; a missing factor did not apply to the candidate."""
    capacity: Optional[float] = None
    distance: Optional[float] = None
    route_efficiency: Optional[float] = None
    personalization: Optional[float] = None


class SlotRecommendationItem(ApiModel):
    slot_id: str
    date: date
    time_start: str = Field(..., description="HH:MM")
    time_end: str = Field(..., description="HH:MM")
    recommendation_score: Optional[float] = Field(None, ge=0, le=1)
    recommended: bool = False
    reason: Optional[str] = None
    capacity_remaining: int
    capacity: int
    location_id: str
    fulfillment_type: FulfillmentType
    factors: FactorBreakdown = Field(default_factory=FactorBreakdown)


class SlotRecommendationResponse(ApiModel):
    slots: List[SlotRecommendationItem]
    meta: ResponseMeta


# ============================================================================
# Locations
# ============================================================================

class LocationRecommendationRequest(ApiModel):
    postcode: Optional[str] = Field(None, min_length=2, max_length=10)
    customer_id: Optional[str] = None
    delivery_address: Optional[DeliveryAddressIn] = None
    fulfillment_type: FulfillmentType = "pickup"
    deadline_ms: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def _postcode_or_coordinates(self) -> "LocationRecommendationRequest":
        delivery = self.delivery_address
        if self.postcode or (delivery is not None and delivery.postcode):
            return self
        if delivery is not None and delivery.latitude is not None and delivery.longitude is not None:
            return self
        raise ValueError("postcode or deliveryAddress coordinates are required")


class LocationRecommendationItem(ApiModel):
    location_id: str
    name: str
    address: str
    distance_km: Optional[float] = None
    recommendation_score: Optional[float] = Field(None, ge=0, le=1)
    recommended: bool = False
    reason: Optional[str] = None
    available_capacity: int
    total_capacity: int
    factors: FactorBreakdown = Field(default_factory=FactorBreakdown)


class LocationRecommendationResponse(ApiModel):
    locations: List[LocationRecommendationItem]
    meta: ResponseMeta
