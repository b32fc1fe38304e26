"""
Central API Router

Aggregates every endpoint router; main.py mounts it under API_PREFIX.
"""

import logging

from fastapi import APIRouter

from slotwise.api.bookings import router as bookings_router
from slotwise.api.eligibility import router as eligibility_router
from slotwise.api.events import router as events_router
from slotwise.api.recommendations import router as recommendations_router

logger = logging.getLogger(__name__)

api_router = APIRouter()

ROUTERS = [
    recommendations_router,
    eligibility_router,
    bookings_router,
    events_router,
]

for _router in ROUTERS:
    api_router.include_router(_router)
    logger.debug(f"Registered router {_router.prefix}")
