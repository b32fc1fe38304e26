"""
Pydantic Schemas Package

Typed models for the scheduling domain, outbound events and HTTP payloads.

Schema Conventions:
- Domain models use snake_case and are frozen where they describe catalog data
- HTTP payloads (ApiModel) are camelCase on the wire
- Errors always render as {code, message, details: [{field, issue}]}

Export Groups:
- Base: ApiModel, ErrorResponse, ErrorDetail, ResponseMeta
- Domain: Location, Zone, Rule, SlotTemplate, Slot, Booking, ...
- Events: OutboundEvent and its variants
"""

# Base schemas
from slotwise.schemas.base import (
    ApiModel,
    ErrorDetail,
    ErrorResponse,
    ResponseMeta
)

# Domain schemas
from slotwise.schemas.domain import (
    Address,
    Booking,
    Coordinates,
    CustomerPreferences,
    Location,
    Rule,
    ShopCatalog,
    ShopConfig,
    Slot,
    SlotTemplate,
    Weights,
    Zone
)

# Event schemas
from slotwise.schemas.events import (
    BookingEventData,
    OrderScheduled,
    OrderScheduleUpdated,
    OrderScheduleCanceled,
    RecommendationViewed,
    RecommendationSelected,
    OutboundEvent
)

__all__ = [
    # Base
    "ApiModel",
    "ErrorDetail",
    "ErrorResponse",
    "ResponseMeta",
    # Domain
    "Address",
    "Booking",
    "Coordinates",
    "CustomerPreferences",
    "Location",
    "Rule",
    "ShopCatalog",
    "ShopConfig",
    "Slot",
    "SlotTemplate",
    "Weights",
    "Zone",
    # Events
    "BookingEventData",
    "OrderScheduled",
    "OrderScheduleUpdated",
    "OrderScheduleCanceled",
    "RecommendationViewed",
    "RecommendationSelected",
    "OutboundEvent",
]
