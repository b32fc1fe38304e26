"""
Core Errors Module

Standardized error classes for the scheduling service.

Every error that crosses the HTTP boundary renders as:
    {"code": str, "message": str, "details": [{"field": str, "issue": str}, ...]}

Taxonomy:
- ValidationError: malformed request, never retried
- IneligibleError: business rejection carrying an eligibility reason
- CapacityExceededError: slot full at reservation time, re-query candidates
- ConcurrencyConflictError: optimistic version mismatch, safe to re-read and retry
- LedgerStateError: release without a matching reservation
- NotFoundError: unknown shop, slot or booking
- RecommendationsDisabledError: shop switched recommendations off
- ConfigurationError: invalid weights/rules, rejected before any ledger mutation
- EventDeliveryFailure: internal to the event emitter, never surfaced to callers

Usage:
    from slotwise.core.errors import ValidationError, field_issue

    raise ValidationError("Invalid postcode", details=[field_issue("postcode", "too short")])
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

FieldIssue = Dict[str, str]


def field_issue(field: str, issue: str) -> FieldIssue:
    """Build a single {field, issue} detail entry."""
    return {"field": field, "issue": issue}


# ==================== Base Error Class ====================

class AppError(Exception):
    """
    Base application error class.

    Attributes:
        code: Error code (e.g., "validation_error", "capacity_exceeded")
        message: Human-readable error message
        details: Field-level issues, possibly empty
        status_code: HTTP status code for this error type
    """

    status_code: int = 500
    default_code: Optional[str] = None

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[List[FieldIssue]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code or self._default_code()
        self.details = list(details or [])
        if status_code is not None:
            self.status_code = status_code

    def _default_code(self) -> str:
        """
        Generate default error code from class name.

        Returns:
            snake_case version of class name without the Error suffix
        """
        name = self.__class__.__name__
        if name.endswith("Error"):
            name = name[:-5]

        result = []
        for i, char in enumerate(name):
            if char.isupper() and i > 0:
                result.append("_")
            result.append(char.lower())

        return "".join(result)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to the public {code, message, details} shape."""
        return {
            "code": self.code,
            "message": self.message,
            "details": [dict(d) for d in self.details],
        }


# ==================== Request / Business Errors ====================

class ValidationError(AppError):
    """Malformed request (400). Field-level, returned synchronously."""

    status_code = 400
    default_code = "validation_error"

    def __init__(self, message: str = "Validation failed", details: Optional[List[FieldIssue]] = None):
        super().__init__(message=message, details=details)


class IneligibleError(AppError):
    """
    Business rejection (422) for an address/date that fails zone or rule checks.

    The reason is surfaced verbatim so the storefront can pick a message.
    """

    status_code = 422
    default_code = "ineligible"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(
            message=message or f"Not eligible: {reason}",
            details=[field_issue("reason", reason)],
        )


class CapacityExceededError(AppError):
    """Slot is full at reservation time (409). Callers must re-query candidates."""

    status_code = 409
    default_code = "capacity_exceeded"

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(
            message=f"Slot {slot_id} has no remaining capacity",
            details=[field_issue("slotId", "full")],
        )


class ConcurrencyConflictError(AppError):
    """Optimistic version mismatch (409). Re-read current state and retry the whole operation."""

    status_code = 409
    default_code = "concurrency_conflict"

    def __init__(self, entity: str, expected: int, actual: int):
        self.entity = entity
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"{entity} changed concurrently (expected version {expected}, found {actual})",
            details=[field_issue("expectedVersion", f"current version is {actual}")],
        )


class LedgerStateError(AppError):
    """Release requested on a slot with nothing booked (409)."""

    status_code = 409
    default_code = "ledger_state_error"


class NotFoundError(AppError):
    """Requested shop, slot or booking does not exist (404)."""

    status_code = 404
    default_code = "not_found"

    def __init__(self, message: str = "Resource not found", details: Optional[List[FieldIssue]] = None):
        super().__init__(message=message, details=details)


class RecommendationsDisabledError(AppError):
    """Shop has recommendations switched off (403)."""

    status_code = 403
    default_code = "recommendations_disabled"

    def __init__(self, shop_id: str):
        super().__init__(message=f"Recommendations are disabled for shop {shop_id}")


class ConfigurationError(AppError):
    """Invalid shop configuration; fatal at the boundary."""

    status_code = 500
    default_code = "configuration_error"

    def __init__(self, message: str = "Invalid configuration", details: Optional[List[FieldIssue]] = None):
        super().__init__(message=message, details=details)


class EventDeliveryFailure(AppError):
    """
    A single webhook delivery attempt failed.

    Raised and handled inside the event emitter only.
    """

    status_code = 502
    default_code = "event_delivery_failure"

    def __init__(self, message: str, response_status: Optional[int] = None, retryable: bool = True):
        self.response_status = response_status
        self.retryable = retryable
        super().__init__(message=message)


# ==================== Helper Functions ====================

def issues_from_pydantic(errors: Iterable[Dict[str, Any]], prefix: str = "") -> List[FieldIssue]:
    """
    Convert pydantic error dicts (exc.errors()) into {field, issue} entries.

    Args:
        errors: Iterable of pydantic error dicts with "loc" and "msg" keys
        prefix: Optional field prefix (e.g. "candidates[2]")

    Returns:
        List of field issues
    """
    issues = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc)
        if prefix:
            field = f"{prefix}.{field}" if field else prefix
        issues.append(field_issue(field or "request", str(error.get("msg", "invalid"))))
    return issues


def error_payload(
    code: str,
    message: str,
    details: Optional[List[FieldIssue]] = None
) -> Dict[str, Any]:
    """
    Create a standardized error payload dict.

    Example:
        >>> error_payload("not_found", "Unknown shop")
        {'code': 'not_found', 'message': 'Unknown shop', 'details': []}
    """
    return {
        "code": code,
        "message": message,
        "details": list(details or []),
    }
