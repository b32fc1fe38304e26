"""
Core Package

Centralized configuration, logging and error handling for the scheduling service.

Modules:
- config: Process-level environment settings
- logging: Logging with trace_id/shop_id context injection
- errors: Error taxonomy rendered as {code, message, details}

Usage:
    from slotwise.core import settings, setup_logging, bind_request_context
    from slotwise.core import ValidationError, CapacityExceededError
"""

# Configuration
from slotwise.core.config import settings, get_settings, is_production

# Logging
from slotwise.core.logging import (
    setup_logging,
    set_trace_id,
    get_trace_id,
    set_shop_id,
    bind_request_context
)

# Errors
from slotwise.core.errors import (
    AppError,
    ValidationError,
    IneligibleError,
    CapacityExceededError,
    ConcurrencyConflictError,
    LedgerStateError,
    NotFoundError,
    RecommendationsDisabledError,
    ConfigurationError,
    EventDeliveryFailure,
    field_issue,
    issues_from_pydantic,
    error_payload
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    "is_production",

    # Logging
    "setup_logging",
    "set_trace_id",
    "get_trace_id",
    "set_shop_id",
    "bind_request_context",

    # Errors
    "AppError",
    "ValidationError",
    "IneligibleError",
    "CapacityExceededError",
    "ConcurrencyConflictError",
    "LedgerStateError",
    "NotFoundError",
    "RecommendationsDisabledError",
    "ConfigurationError",
    "EventDeliveryFailure",
    "field_issue",
    "issues_from_pydantic",
    "error_payload",
]
