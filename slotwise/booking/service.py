"""
Booking Service

Book, reschedule and cancel orders against the capacity ledger.

Ordering of every mutation:
1. Re-check eligibility for the target slot (no ledger change when ineligible)
2. Under the order's lock: check the booking version, mutate the ledger,
   write the new Booking with version + 1
3. After every lock is released: record the outbound event

Event delivery is independent of the booking result; a webhook that never
acknowledges does not undo a reservation.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from slotwise.algorithms.eligibility import EligibilityRequest, require_eligible
from slotwise.catalog.registry import ShopRegistry
from slotwise.core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
    field_issue,
)
from slotwise.events.emitter import EventEmitter
from slotwise.schemas.domain import Address, Booking, ScheduledDelivery, ShopCatalog, Slot
from slotwise.schemas.events import (
    BookingEventData,
    OrderScheduleCanceled,
    OrderScheduled,
    OrderScheduleUpdated,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    """
    Bookings per (shop, order), with optimistic versions.
    """

    def __init__(
        self,
        registry: ShopRegistry,
        emitter: EventEmitter,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.emitter = emitter
        self.clock = clock
        self._bookings: Dict[Tuple[str, str], Booking] = {}
        self._order_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _order_lock(self, key: Tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            lock = self._order_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._order_locks[key] = lock
            return lock

    # ==================== Helpers ====================

    def _slot_for(self, shop_id: str, slot_id: str, fulfillment_type: str) -> Slot:
        slot = self.registry.ledger(shop_id).slot(slot_id)
        if slot.fulfillment_type != fulfillment_type:
            raise ValidationError(
                f"Slot {slot_id} is a {slot.fulfillment_type} slot",
                details=[field_issue("fulfillmentType", f"slot serves {slot.fulfillment_type}")],
            )
        return slot

    def _check_eligible(
        self,
        catalog: ShopCatalog,
        slot: Slot,
        address: Optional[Address],
        now: datetime,
    ) -> None:
        if address is None:
            raise ValidationError("Address is required", details=[field_issue("postcode", "required")])
        require_eligible(
            EligibilityRequest(
                address=address,
                fulfillment_type=slot.fulfillment_type,
                candidate_date=slot.date,
                now=now,
                candidate_start=slot.time_start,
                location_id=slot.location_id,
            ),
            catalog,
        )

    def _event_data(self, catalog: ShopCatalog, booking: Booking, slot: Slot) -> BookingEventData:
        location = catalog.location(slot.location_id)
        tz = location.tz if location is not None else timezone.utc
        return BookingEventData(
            shop_id=booking.shop_id,
            order_id=booking.order_id,
            fulfillment_type=booking.fulfillment_type,
            location_id=booking.location_id,
            delivery_address=booking.delivery_address if booking.fulfillment_type == "delivery" else None,
            scheduled_at=slot.starts_at(tz),
            slot_id=slot.id,
            meta={
                "bookingVersion": booking.version,
                "wasRecommended": booking.was_recommended,
                "timeEnd": slot.time_end.strftime("%H:%M"),
            },
        )

    @staticmethod
    def _check_version(booking: Booking, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != booking.version:
            raise ConcurrencyConflictError(f"Booking {booking.order_id}", expected_version, booking.version)

    # ==================== Operations ====================

    def get(self, shop_id: str, order_id: str) -> Booking:
        booking = self._bookings.get((shop_id, order_id))
        if booking is None:
            raise NotFoundError(f"No booking for order {order_id}", details=[field_issue("orderId", "unknown order")])
        return booking

    def book(
        self,
        shop_id: str,
        order_id: str,
        slot_id: str,
        fulfillment_type: str,
        address: Optional[Address],
        was_recommended: bool = False,
    ) -> Booking:
        """
        Reserve a slot for an order.

        Raises:
            IneligibleError: address/date rejected (ledger untouched)
            CapacityExceededError: slot full
            ValidationError: order already has an active booking
        """
        catalog = self.registry.catalog(shop_id)
        ledger = self.registry.ledger(shop_id)
        slot = self._slot_for(shop_id, slot_id, fulfillment_type)
        now = self.clock()
        self._check_eligible(catalog, slot, address, now)

        key = (shop_id, order_id)
        with self._order_lock(key):
            existing = self._bookings.get(key)
            if existing is not None and existing.status != "canceled":
                raise ValidationError(
                    f"Order {order_id} is already scheduled",
                    details=[field_issue("orderId", "already scheduled, reschedule instead")],
                )
            ledger.reserve(slot_id)
            booking = Booking(
                order_id=order_id,
                shop_id=shop_id,
                slot_id=slot_id,
                location_id=slot.location_id,
                fulfillment_type=slot.fulfillment_type,
                delivery_address=address,
                status="scheduled",
                version=existing.version + 1 if existing else 1,
                was_recommended=was_recommended,
                scheduled_at=now,
                updated_at=now,
            )
            self._bookings[key] = booking

        logger.info(f"Booked order {order_id} into slot {slot_id}")
        self.emitter.record(OrderScheduled(data=self._event_data(catalog, booking, slot)), catalog.config)
        return booking

    def reschedule(
        self,
        shop_id: str,
        order_id: str,
        new_slot_id: str,
        expected_version: Optional[int] = None,
    ) -> Booking:
        """
        Move an order to another slot; old release and new reserve are one unit.

        Raises:
            ConcurrencyConflictError: expected_version is stale
            CapacityExceededError: new slot full (old reservation kept)
            IneligibleError: new slot not eligible for the order's address
        """
        catalog = self.registry.catalog(shop_id)
        ledger = self.registry.ledger(shop_id)
        current = self.get(shop_id, order_id)
        if current.status == "canceled":
            raise NotFoundError(f"Order {order_id} is canceled", details=[field_issue("orderId", "canceled")])

        slot = self._slot_for(shop_id, new_slot_id, current.fulfillment_type)
        now = self.clock()
        self._check_eligible(catalog, slot, current.delivery_address, now)

        key = (shop_id, order_id)
        with self._order_lock(key):
            current = self._bookings[key]
            self._check_version(current, expected_version)
            if current.slot_id == new_slot_id:
                return current
            previous_slot_id = current.slot_id
            ledger.transfer(previous_slot_id, new_slot_id)
            booking = current.model_copy(update={
                "slot_id": new_slot_id,
                "location_id": slot.location_id,
                "status": "updated",
                "version": current.version + 1,
                "updated_at": now,
            })
            self._bookings[key] = booking

        logger.info(f"Rescheduled order {order_id} from {previous_slot_id} to {new_slot_id}")
        self.emitter.record(
            OrderScheduleUpdated(
                data=self._event_data(catalog, booking, slot),
                previous_slot_id=previous_slot_id,
            ),
            catalog.config,
        )
        return booking

    def cancel(self, shop_id: str, order_id: str, expected_version: Optional[int] = None) -> Booking:
        """
        Cancel an order and release its slot.

        Raises:
            ConcurrencyConflictError: expected_version is stale
            NotFoundError: unknown or already canceled order
        """
        catalog = self.registry.catalog(shop_id)
        ledger = self.registry.ledger(shop_id)
        key = (shop_id, order_id)
        self.get(shop_id, order_id)

        with self._order_lock(key):
            current = self._bookings[key]
            if current.status == "canceled":
                raise NotFoundError(f"Order {order_id} is canceled", details=[field_issue("orderId", "canceled")])
            self._check_version(current, expected_version)
            ledger.release(current.slot_id)
            booking = current.model_copy(update={
                "status": "canceled",
                "version": current.version + 1,
                "updated_at": self.clock(),
            })
            self._bookings[key] = booking

        slot = ledger.slot(booking.slot_id)
        logger.info(f"Canceled order {order_id}, released slot {booking.slot_id}")
        self.emitter.record(OrderScheduleCanceled(data=self._event_data(catalog, booking, slot)), catalog.config)
        return booking

    # ==================== Reads ====================

    def scheduled_deliveries(self, shop_id: str, exclude_order_id: Optional[str] = None) -> List[ScheduledDelivery]:
        """Active delivery bookings with coordinates, for route-efficiency scoring."""
        ledger = self.registry.ledger(shop_id)
        deliveries = []
        for (booking_shop, order_id), booking in sorted(self._bookings.items()):
            if booking_shop != shop_id or order_id == exclude_order_id:
                continue
            if booking.status == "canceled" or booking.fulfillment_type != "delivery":
                continue
            address = booking.delivery_address
            if address is None or address.coordinates() is None:
                continue
            slot = ledger.slot(booking.slot_id)
            deliveries.append(ScheduledDelivery(
                date=slot.date,
                time_start=slot.time_start,
                latitude=address.latitude,
                longitude=address.longitude,
            ))
        return deliveries
