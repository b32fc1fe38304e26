"""
Booking Package

- ledger: Per-slot capacity ledger (reserve / release / transfer)
- service: Order bookings with optimistic versions

Import the service directly: `from slotwise.booking.service import BookingService`
"""

from slotwise.booking.ledger import CapacityLedger, SlotCapacity

__all__ = [
    "CapacityLedger",
    "SlotCapacity",
]
