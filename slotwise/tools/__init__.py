"""
Tools Package

Outbound HTTP clients.

- webhook_client: Shop webhook delivery (connection pooled)

NOTE: Clients are NOT imported eagerly to avoid connection side effects at module import.
Import specific clients as needed: `from slotwise.tools import webhook_client`
"""


async def aclose_all_clients() -> None:
    """
    Close all HTTP clients gracefully.
    Should be called during FastAPI shutdown (lifespan).
    """
    from slotwise.tools import webhook_client

    await webhook_client.aclose_client()
