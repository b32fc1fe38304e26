"""
API Dependencies

Shared FastAPI dependencies: the service container and the shop id header.
"""

from typing import Optional

from fastapi import Header, Request

from slotwise.constants.constants import SHOP_HEADER_NAME
from slotwise.core.errors import ValidationError, field_issue
from slotwise.core.logging import get_trace_id, set_shop_id
from slotwise.services.container import Services


def get_services(request: Request) -> Services:
    """Service container created by the application lifespan."""
    return request.app.state.services


async def get_shop_id(x_shop_id: Optional[str] = Header(None, alias=SHOP_HEADER_NAME)) -> str:
    """
    Tenant selector for every scheduling endpoint.

    Raises:
        ValidationError: header missing or blank
    """
    if not x_shop_id or not x_shop_id.strip():
        raise ValidationError(
            "Missing shop id",
            details=[field_issue(SHOP_HEADER_NAME, "required header")],
        )
    shop_id = x_shop_id.strip()
    set_shop_id(shop_id)
    return shop_id


def current_trace_id() -> str:
    return get_trace_id()
