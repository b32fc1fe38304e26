"""
Constants Package

Scoring thresholds and header names.

Usage:
    from slotwise.constants import thresholds
    from slotwise.constants.constants import SHOP_HEADER_NAME
"""

from slotwise.constants import thresholds
from slotwise.constants.constants import (
    TRACE_HEADER_NAME,
    SHOP_HEADER_NAME,
    normalize_trace_id,
)

__all__ = [
    "thresholds",
    "TRACE_HEADER_NAME",
    "SHOP_HEADER_NAME",
    "normalize_trace_id",
]
