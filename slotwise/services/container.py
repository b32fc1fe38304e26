"""
Service Container

Wires the registry, ledger-backed booking service, event emitter and
scheduling service into one object stored on app.state.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import httpx

from slotwise.analytics.recommendation_log import PreferenceStore, RecommendationLog
from slotwise.booking.service import BookingService, utc_now
from slotwise.catalog.registry import ShopRegistry
from slotwise.events.emitter import EventEmitter
from slotwise.services.scheduling import SchedulingService

logger = logging.getLogger(__name__)


class Services:
    """Everything a request handler needs, built once per application."""

    def __init__(
        self,
        registry: Optional[ShopRegistry] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Callable[[], datetime] = utc_now,
        webhook_client: Optional[httpx.AsyncClient] = None,
    ):
        self.registry = registry or ShopRegistry()
        self.emitter = emitter or EventEmitter(client=webhook_client)
        self.preferences = PreferenceStore()
        self.log = RecommendationLog()
        self.bookings = BookingService(self.registry, self.emitter, clock=clock)
        self.scheduling = SchedulingService(
            self.registry,
            self.bookings,
            self.emitter,
            preferences=self.preferences,
            log=self.log,
            clock=clock,
        )
        logger.debug("Service container initialized")
