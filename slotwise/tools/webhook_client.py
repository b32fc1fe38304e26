"""
Webhook HTTP Client

Async transport for outbound scheduling events.

Functions:
- post_event: POST a signed event body to a shop's webhook URL
- get_client: Shared httpx.AsyncClient (connection pooled)
- aclose_client: Close the HTTP client (call during app shutdown)

A receiver acknowledges an event with any 2xx response. Anything else,
including timeouts and connection errors, raises EventDeliveryFailure so
the emitter's retry policy can take over.
"""

import logging
from typing import Dict, Optional

import httpx

from slotwise.core.config import settings
from slotwise.core.errors import EventDeliveryFailure

logger = logging.getLogger(__name__)


# ============================================================================
# Module-level HTTP Client (Singleton with Connection Pooling)
# ============================================================================

_client: Optional[httpx.AsyncClient] = None


def get_client() -> httpx.AsyncClient:
    """
    Get or create the module-level httpx.AsyncClient singleton.

    Returns:
        Shared httpx.AsyncClient instance
    """
    global _client

    if _client is None or _client.is_closed:
        limits = httpx.Limits(
            max_connections=settings.WEBHOOK_CLIENT_MAX_CONNECTIONS,
            max_keepalive_connections=settings.WEBHOOK_CLIENT_MAX_KEEPALIVE
        )
        _client = httpx.AsyncClient(
            timeout=settings.WEBHOOK_CLIENT_TIMEOUT,
            limits=limits,
            follow_redirects=False
        )
        logger.info("Initialized webhook httpx.AsyncClient with connection pooling")

    return _client


async def aclose_client() -> None:
    """
    Close the module-level httpx.AsyncClient gracefully.
    Should be called during FastAPI shutdown (lifespan).
    """
    global _client

    if _client is not None and not _client.is_closed:
        await _client.aclose()
        logger.info("Closed webhook httpx.AsyncClient")
        _client = None


# ============================================================================
# Delivery
# ============================================================================

async def post_event(
    url: str,
    body: bytes,
    headers: Dict[str, str],
    client: Optional[httpx.AsyncClient] = None
) -> int:
    """
    Deliver one event body.

    Args:
        url: Receiver URL
        body: Exact bytes that were signed
        headers: Signature, idempotency and event type headers
        client: Optional client override (defaults to the shared singleton)

    Returns:
        HTTP status code of the acknowledging 2xx response

    Raises:
        EventDeliveryFailure: non-2xx response, timeout or connection error;
            an unusable URL is raised as non-retryable
    """
    client = client or get_client()
    request_headers = {"Content-Type": "application/json", **headers}

    try:
        response = await client.post(url, content=body, headers=request_headers)
    except httpx.TimeoutException as e:
        raise EventDeliveryFailure(f"Webhook timed out: {url}") from e
    except httpx.InvalidURL as e:
        raise EventDeliveryFailure(f"Invalid webhook URL {url!r}: {e}", retryable=False) from e
    except httpx.HTTPError as e:
        raise EventDeliveryFailure(f"Webhook connection error: {type(e).__name__}: {e}") from e

    if not response.is_success:
        raise EventDeliveryFailure(
            f"Webhook returned {response.status_code}",
            response_status=response.status_code
        )

    return response.status_code
