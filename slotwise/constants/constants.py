"""
Global Constants

Non-business constants used throughout the application: header names
and small request helpers.
"""

import uuid
from typing import Optional

# ============================================================================
# HTTP Headers
# ============================================================================

TRACE_HEADER_NAME = "x-request-id"
SHOP_HEADER_NAME = "x-shop-id"

# Outbound webhook headers
SIGNATURE_HEADER_NAME = "x-slotwise-signature"
EVENT_TYPE_HEADER_NAME = "x-slotwise-event"
SCHEMA_VERSION_HEADER_NAME = "x-slotwise-schema-version"
IDEMPOTENCY_HEADER_NAME = "idempotency-key"


# ============================================================================
# Helper Functions
# ============================================================================

def normalize_trace_id(trace_id: Optional[str]) -> str:
    """
    Normalize trace ID, generate new one if missing/invalid.

    Example:
        >>> normalize_trace_id("abc123")
        'abc123'
    """
    if not trace_id or not isinstance(trace_id, str) or not trace_id.strip():
        return str(uuid.uuid4())
    return trace_id.strip()
