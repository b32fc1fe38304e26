"""
Event Signing

Idempotency keys and HMAC-SHA256 body signatures for outbound events.
"""

import hashlib
import hmac
import json
from typing import Any, Dict


def idempotency_key(*parts: str) -> str:
    """
    Deterministic key from the identifying parts of an event.

    Example:
        >>> idempotency_key("order.scheduled", "1001", "slot-a", "1") == \\
        ...     idempotency_key("order.scheduled", "1001", "slot-a", "1")
        True
    """
    joined = "\x1f".join(parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def canonical_body(payload: Dict[str, Any]) -> bytes:
    """Stable JSON encoding: sorted keys, no insignificant whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def sign(body: bytes, secret: str) -> str:
    """HMAC-SHA256 of the body, formatted as "sha256=<hex>"."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify(body: bytes, secret: str, signature: str) -> bool:
    """Constant-time check of a signature produced by sign()."""
    return hmac.compare_digest(sign(body, secret), signature)
