"""
Events Package

Signed, idempotent outbound notifications.

- emitter: Outbox + async delivery with retry and dead-lettering
- signing: Idempotency keys and HMAC-SHA256 signatures
"""

from slotwise.events.emitter import DeliveryState, EventEmitter
from slotwise.events.signing import idempotency_key, sign, verify

__all__ = [
    "DeliveryState",
    "EventEmitter",
    "idempotency_key",
    "sign",
    "verify",
]
