"""
Eligibility API Endpoints

Endpoints:
- POST /eligibility/check - Is a postcode served, by which zone and locations

With a date and fulfillment type the answer also covers cutoff, lead time
and blackout rules for that date.
"""

import logging

from fastapi import APIRouter, Depends

from slotwise.api.deps import get_services, get_shop_id
from slotwise.schemas.booking import (
    EligibilityCheckRequest,
    EligibilityCheckResponse,
    EligibleLocation,
)
from slotwise.schemas.domain import Address
from slotwise.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/eligibility", tags=["eligibility"])


@router.post("/check", response_model=EligibilityCheckResponse)
async def check_eligibility(
    body: EligibilityCheckRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    address = Address(postcode=body.postcode, latitude=body.latitude, longitude=body.longitude)
    result = services.scheduling.check_eligibility(
        shop_id,
        address,
        fulfillment_type=body.fulfillment_type,
        candidate_date=body.check_date,
    )
    coverage = result.coverage
    logger.info(f"Eligibility for {address.normalized_postcode}: {result.eligible} ({result.reason})")

    return EligibilityCheckResponse(
        eligible=result.eligible,
        reason=result.reason,
        zone_id=coverage.zone_id,
        location_id=result.location_id,
        locations=[
            EligibleLocation(
                id=location.id,
                name=location.name,
                address=location.address,
                supports_delivery=location.supports_delivery,
                supports_pickup=location.supports_pickup,
            )
            for location in coverage.locations
        ],
        services=coverage.services,
    )
