"""
Scheduling Service

Request-level orchestration on top of the pure algorithms:

    eligibility -> slot lookup -> ledger capacity filter -> scoring (deadline)

plus the analytics side (view/selection logging, preference learning,
analytics events).

Each call reads the shop's catalog snapshot once and passes its ShopConfig
explicitly into every algorithm, so shops never see each other's weights.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from slotwise.algorithms.eligibility import (
    EligibilityRequest,
    PostcodeCoverage,
    check_postcode,
    check_rule,
    evaluate,
    resolve_effective_rule,
    select_zone,
)
from slotwise.algorithms.recommendation import (
    CustomerContext,
    LocationCandidate,
    LocationRanking,
    SlotCandidate,
    SlotRanking,
    score_locations_within,
    score_slots_within,
)
from slotwise.analytics.recommendation_log import (
    PreferenceStore,
    RecommendationLog,
    RecommendationLogEntry,
)
from slotwise.booking.service import BookingService, utc_now
from slotwise.catalog.registry import ShopRegistry
from slotwise.core.config import settings
from slotwise.core.errors import (
    IneligibleError,
    NotFoundError,
    RecommendationsDisabledError,
    ValidationError,
    field_issue,
)
from slotwise.events.emitter import EventEmitter
from slotwise.schemas.domain import Address, FulfillmentType, ShopCatalog
from slotwise.schemas.events import CandidateShown, RecommendationSelected, RecommendationViewed

logger = logging.getLogger(__name__)


# ============================================================================
# Queries
# ============================================================================

class SlotQuery(BaseModel):
    address: Address
    fulfillment_type: FulfillmentType
    customer_id: Optional[str] = None
    location_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    deadline_ms: Optional[int] = Field(None, gt=0)


class LocationQuery(BaseModel):
    address: Optional[Address] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    fulfillment_type: FulfillmentType = "pickup"
    customer_id: Optional[str] = None
    deadline_ms: Optional[int] = Field(None, gt=0)


class EligibilityCheck(BaseModel):
    coverage: PostcodeCoverage
    eligible: bool
    reason: Optional[str] = None
    location_id: Optional[str] = None


class SchedulingService:
    """
    Entry point used by the HTTP layer for recommendations and analytics.
    """

    def __init__(
        self,
        registry: ShopRegistry,
        bookings: BookingService,
        emitter: EventEmitter,
        preferences: Optional[PreferenceStore] = None,
        log: Optional[RecommendationLog] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.bookings = bookings
        self.emitter = emitter
        self.preferences = preferences or PreferenceStore()
        self.log = log or RecommendationLog()
        self.clock = clock

    # ==================== Helpers ====================

    def _enabled_catalog(self, shop_id: str) -> ShopCatalog:
        catalog = self.registry.catalog(shop_id)
        if not catalog.config.recommendations_enabled:
            raise RecommendationsDisabledError(shop_id)
        return catalog

    def _date_range(self, start: Optional[date], end: Optional[date], now: datetime) -> Tuple[date, date]:
        start = start or now.date()
        end = end or start + timedelta(days=settings.DEFAULT_HORIZON_DAYS - 1)
        if end < start:
            raise ValidationError(
                "endDate is before startDate",
                details=[field_issue("endDate", "must not be before startDate")],
            )
        return start, end

    def _customer(self, shop_id: str, customer_id: Optional[str], address: Optional[Address]) -> CustomerContext:
        return CustomerContext(
            coordinates=address.coordinates() if address else None,
            preferences=self.preferences.get(shop_id, customer_id),
        )

    # ==================== Recommendations ====================

    async def recommend_slots(self, shop_id: str, query: SlotQuery) -> Tuple[SlotRanking, date, date]:
        """
        Rank the eligible, non-full slots for an address.

        Returns:
            (ranking, start_date, end_date)

        Raises:
            RecommendationsDisabledError: shop switched recommendations off
            IneligibleError: no zone serves the address for this fulfillment type
        """
        catalog = self._enabled_catalog(shop_id)
        now = self.clock()
        start, end = self._date_range(query.start_date, query.end_date, now)

        zone, reason = select_zone(catalog, query.address, query.fulfillment_type, query.location_id)
        if zone is None:
            raise IneligibleError(reason)

        ledger = self.registry.ledger(shop_id)
        rules = {}
        eligible_slots = []
        for slot in self.registry.slots(shop_id, start, end, query.location_id, query.fulfillment_type):
            location = catalog.location(slot.location_id)
            if slot.location_id not in zone.location_ids or location is None or not location.is_active:
                continue
            if slot.location_id not in rules:
                rules[slot.location_id] = resolve_effective_rule(catalog.rules, zone.id, slot.location_id)
            if check_rule(rules[slot.location_id], slot.date, now, location, slot.time_start) is None:
                eligible_slots.append(slot)

        capacities = ledger.available(slot.id for slot in eligible_slots)
        candidates = []
        for slot in eligible_slots:
            view = capacities.get(slot.id)
            if view is None:
                continue
            location = catalog.location(slot.location_id)
            candidates.append(SlotCandidate(
                slot_id=slot.id,
                date=slot.date,
                time_start=slot.time_start,
                time_end=slot.time_end,
                location_id=slot.location_id,
                fulfillment_type=slot.fulfillment_type,
                capacity=view.capacity,
                booked_count=view.booked_count,
                location_latitude=location.latitude,
                location_longitude=location.longitude,
            ))

        logger.info(
            f"Slot recommendation for zone {zone.id}: {len(candidates)} candidates ({start}..{end})"
        )
        ranking = await score_slots_within(
            query.deadline_ms or settings.DEFAULT_DEADLINE_MS,
            candidates,
            catalog.config,
            customer=self._customer(shop_id, query.customer_id, query.address),
            other_deliveries=self.bookings.scheduled_deliveries(shop_id),
        )
        return ranking, start, end

    async def recommend_locations(self, shop_id: str, query: LocationQuery) -> LocationRanking:
        """
        Rank locations for pickup (or delivery origin).

        With a postcode only locations whose zones cover it are offered;
        without one every active location supporting the fulfillment type is.
        """
        catalog = self._enabled_catalog(shop_id)
        now = self.clock()

        if query.address is not None:
            coverage = check_postcode(catalog, query.address, query.fulfillment_type)
            if not coverage.eligible:
                raise IneligibleError(coverage.reason or "no_matching_zone")
            locations = coverage.locations
        else:
            locations = [loc for loc in catalog.active_locations() if loc.supports(query.fulfillment_type)]

        start, end = self._date_range(None, None, now)
        ledger = self.registry.ledger(shop_id)
        totals: Dict[str, List[int]] = {loc.id: [0, 0] for loc in locations}
        for slot in self.registry.slots(shop_id, start, end, fulfillment_type=query.fulfillment_type):
            if slot.location_id not in totals:
                continue
            view = ledger.snapshot(slot.id)
            totals[slot.location_id][0] += view.remaining
            totals[slot.location_id][1] += view.capacity

        candidates = [
            LocationCandidate(
                location_id=loc.id,
                name=loc.name,
                address=loc.address,
                latitude=loc.latitude,
                longitude=loc.longitude,
                available_capacity=totals[loc.id][0],
                total_capacity=totals[loc.id][1],
            )
            for loc in locations
        ]

        address = query.address
        if address is None and query.latitude is not None and query.longitude is not None:
            customer = CustomerContext(
                coordinates={"latitude": query.latitude, "longitude": query.longitude},
                preferences=self.preferences.get(shop_id, query.customer_id),
            )
        else:
            customer = self._customer(shop_id, query.customer_id, address)

        return await score_locations_within(
            query.deadline_ms or settings.DEFAULT_DEADLINE_MS,
            candidates,
            catalog.config,
            customer=customer,
        )

    # ==================== Eligibility ====================

    def check_eligibility(
        self,
        shop_id: str,
        address: Address,
        fulfillment_type: Optional[FulfillmentType] = None,
        candidate_date: Optional[date] = None,
    ) -> EligibilityCheck:
        """Coverage for a postcode, and the date-specific verdict when a date is given."""
        catalog = self.registry.catalog(shop_id)
        coverage = check_postcode(catalog, address, fulfillment_type)
        if candidate_date is None or fulfillment_type is None or not coverage.eligible:
            return EligibilityCheck(coverage=coverage, eligible=coverage.eligible, reason=coverage.reason)

        outcome = evaluate(
            EligibilityRequest(
                address=address,
                fulfillment_type=fulfillment_type,
                candidate_date=candidate_date,
                now=self.clock(),
            ),
            catalog,
        )
        if outcome.eligible:
            return EligibilityCheck(coverage=coverage, eligible=True, location_id=outcome.location.id)
        return EligibilityCheck(coverage=coverage, eligible=False, reason=outcome.reason)

    # ==================== Analytics ====================

    def record_view(
        self,
        shop_id: str,
        session_id: str,
        candidates: List[CandidateShown],
        customer_id: Optional[str] = None,
    ) -> RecommendationLogEntry:
        catalog = self.registry.catalog(shop_id)
        now = self.clock()
        entry = RecommendationLogEntry(
            shop_id=shop_id,
            session_id=session_id,
            customer_id=customer_id,
            candidates_shown=candidates,
            timestamp=now,
        )
        self.log.append(entry)
        self.emitter.record(
            RecommendationViewed(
                shop_id=shop_id,
                session_id=session_id,
                customer_id=customer_id,
                candidates=candidates,
                viewed_at=now,
            ),
            catalog.config,
        )
        return entry

    def record_selection(
        self,
        shop_id: str,
        session_id: str,
        selection_type: str,
        selection_id: str,
        was_recommended: bool,
        customer_id: Optional[str] = None,
        alternatives_shown: Optional[List[str]] = None,
        candidates: Optional[List[CandidateShown]] = None,
    ) -> RecommendationLogEntry:
        """
        Log a selection, learn from it and emit recommendation.selected.

        Raises:
            NotFoundError: the selected slot or location is unknown
        """
        catalog = self.registry.catalog(shop_id)
        ledger = self.registry.ledger(shop_id)
        now = self.clock()

        slot = None
        if selection_type == "slot":
            slot = ledger.slot(selection_id)
        elif catalog.location(selection_id) is None:
            raise NotFoundError(
                f"Unknown location {selection_id}",
                details=[field_issue("selected.id", "unknown location")],
            )

        entry = RecommendationLogEntry(
            shop_id=shop_id,
            session_id=session_id,
            customer_id=customer_id,
            candidates_shown=candidates or [],
            selection=selection_id,
            was_recommended=was_recommended,
            timestamp=now,
        )
        self.log.append(entry)

        if customer_id:
            self.preferences.learn_from_selection(
                shop_id,
                customer_id,
                slot=slot,
                location_id=selection_id if slot is None else None,
            )

        self.emitter.record(
            RecommendationSelected(
                shop_id=shop_id,
                session_id=session_id,
                customer_id=customer_id,
                selection_type=selection_type,
                selection_id=selection_id,
                was_recommended=was_recommended,
                alternatives_shown=alternatives_shown or [],
                candidates=candidates or [],
                selected_at=now,
            ),
            catalog.config,
        )
        return entry
