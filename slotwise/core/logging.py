"""
Core Logging Module

Centralized logging configuration with request-scoped context injection.
Uses contextvars so the trace id and the shop id of the current request
follow the call through async tasks and worker threads started with
asyncio.to_thread (which copies the context).

Usage:
    # At application startup:
    from slotwise.core.logging import setup_logging
    setup_logging()

    # In request handlers:
    from slotwise.core.logging import bind_request_context
    bind_request_context(trace_id="abc123", shop_id="shop-1")
    logger = logging.getLogger(__name__)
    logger.info("Scoring slots")  # -> ... [abc123] [shop-1] slotwise.x: Scoring slots
"""

import logging
import sys
from contextvars import ContextVar
from typing import Optional


# ==================== Context Variables ====================

TRACE_ID: ContextVar[str] = ContextVar("trace_id", default="-")
SHOP_ID: ContextVar[str] = ContextVar("shop_id", default="-")


def set_trace_id(trace_id: str) -> None:
    """Set the trace_id for the current context."""
    TRACE_ID.set(trace_id)


def get_trace_id() -> str:
    """
    Get the trace_id for the current context.

    Returns:
        Current trace_id or "-" if not set
    """
    return TRACE_ID.get()


def set_shop_id(shop_id: str) -> None:
    """Set the shop (tenant) id for the current context."""
    SHOP_ID.set(shop_id)


def get_shop_id() -> str:
    return SHOP_ID.get()


def bind_request_context(trace_id: Optional[str] = None, shop_id: Optional[str] = None) -> None:
    """
    Bind trace and shop ids for the current request in one call.

    Args:
        trace_id: Request trace id (left unchanged when None)
        shop_id: Tenant id (left unchanged when None)
    """
    if trace_id:
        TRACE_ID.set(trace_id)
    if shop_id:
        SHOP_ID.set(shop_id)


# ==================== Log Filters ====================

class RequestContextFilter(logging.Filter):
    """
    Logging filter that injects trace_id and shop_id into log records.

    Reads both values from contextvars so formatters can reference
    %(trace_id)s and %(shop_id)s.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        record.shop_id = get_shop_id()
        return True


# ==================== Logging Setup ====================

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(trace_id)s] [%(shop_id)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_setup_done = False


def setup_logging(log_level: Optional[str] = None, force: bool = False) -> None:
    """
    Configure application-wide logging with request context support.

    Sets up:
    - Root logger level from settings or parameter
    - Console handler with structured formatting
    - RequestContextFilter for automatic trace/shop id injection

    Idempotent unless force=True is specified.

    Args:
        log_level: Optional log level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        force: If True, reconfigure even if already set up
    """
    global _logging_setup_done

    if _logging_setup_done and not force:
        return

    if log_level is None:
        from slotwise.core.config import settings
        log_level = settings.LOG_LEVEL

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    if force:
        root_logger.handlers.clear()

    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        console_handler.addFilter(RequestContextFilter())
        root_logger.addHandler(console_handler)

    _logging_setup_done = True

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level.upper()}")
