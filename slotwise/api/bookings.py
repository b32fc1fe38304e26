"""
Booking API Endpoints

Endpoints:
- POST /bookings - Schedule an order into a slot
- GET /bookings/{orderId} - Current booking for an order
- PUT /bookings/{orderId} - Reschedule to another slot
- DELETE /bookings/{orderId} - Cancel and release the slot

Reschedule and cancel accept the booking version the caller last read;
a stale version is rejected with 409 concurrency_conflict.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from slotwise.api.deps import get_services, get_shop_id
from slotwise.schemas.base import ErrorResponse
from slotwise.schemas.booking import BookingRequest, BookingResponse, RescheduleRequest
from slotwise.schemas.domain import Booking
from slotwise.schemas.recommend import build_address
from slotwise.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)


def _response(services: Services, booking: Booking) -> BookingResponse:
    slot = services.registry.ledger(booking.shop_id).slot(booking.slot_id)
    return BookingResponse(
        order_id=booking.order_id,
        shop_id=booking.shop_id,
        slot_id=booking.slot_id,
        location_id=booking.location_id,
        fulfillment_type=booking.fulfillment_type,
        status=booking.status,
        version=booking.version,
        was_recommended=booking.was_recommended,
        date=slot.date,
        time_start=slot.time_start.strftime("%H:%M"),
        time_end=slot.time_end.strftime("%H:%M"),
        scheduled_at=booking.scheduled_at,
        updated_at=booking.updated_at,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    booking = services.bookings.book(
        shop_id,
        body.order_id,
        body.slot_id,
        body.fulfillment_type,
        build_address(body.postcode, body.delivery_address),
        was_recommended=body.was_recommended,
    )
    return _response(services, booking)


@router.get("/{order_id}", response_model=BookingResponse)
async def get_booking(
    order_id: str,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    return _response(services, services.bookings.get(shop_id, order_id))


@router.put("/{order_id}", response_model=BookingResponse)
async def reschedule_booking(
    order_id: str,
    body: RescheduleRequest,
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    booking = services.bookings.reschedule(
        shop_id,
        order_id,
        body.slot_id,
        expected_version=body.expected_version,
    )
    return _response(services, booking)


@router.delete("/{order_id}", response_model=BookingResponse)
async def cancel_booking(
    order_id: str,
    expected_version: Optional[int] = Query(None, alias="expectedVersion", ge=1),
    shop_id: str = Depends(get_shop_id),
    services: Services = Depends(get_services),
):
    booking = services.bookings.cancel(shop_id, order_id, expected_version=expected_version)
    logger.debug(f"Order {order_id} now at version {booking.version}")
    return _response(services, booking)
