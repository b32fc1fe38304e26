"""
Event Emitter

Outbox-style notifier for booking and recommendation events.

Lifecycle of one outbound event:

    PENDING -> DELIVERED | DEAD_LETTERED
    PENDING -> RETRYING -> DELIVERED | DEAD_LETTERED

record() only appends to an in-memory outbox under a short lock and never
performs I/O, so the booking path can call it right after the ledger lock
is released. Delivery happens later on the event loop (dispatch_pending or
the run() background loop started by the app lifespan).

Each event is:
- keyed deterministically by (eventType, orderId, slotId, schemaVersion)
  for booking events, (eventType, sessionId, selectionId, schemaVersion)
  for analytics events
- serialized once to canonical JSON and signed with HMAC-SHA256 using the
  shop's webhook secret
- retried with exponential backoff up to the shop's retry ceiling, both
  captured from ShopConfig when the event was recorded

Delivery failures are logged and dead-lettered. They never propagate to
the caller that recorded the event, and one shop's failing webhook never
stops the loop for the others. An unusable URL is dead-lettered without
retrying.

Delivered records are pruned after DELIVERED_RETENTION_SECONDS, which
also bounds the duplicate-suppression window; dead letters are capped at
MAX_DEAD_LETTERS, oldest first.

Usage:
    emitter = EventEmitter()
    emitter.record(OrderScheduled(data=...), shop_config)
    await emitter.dispatch_pending()
"""

import asyncio
import logging
import threading
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from slotwise.constants import thresholds
from slotwise.constants.constants import (
    EVENT_TYPE_HEADER_NAME,
    IDEMPOTENCY_HEADER_NAME,
    SCHEMA_VERSION_HEADER_NAME,
    SIGNATURE_HEADER_NAME,
    TRACE_HEADER_NAME,
)
from slotwise.core.config import settings
from slotwise.core.errors import EventDeliveryFailure
from slotwise.core.logging import bind_request_context, get_trace_id
from slotwise.events.signing import canonical_body, idempotency_key, sign
from slotwise.schemas.domain import ShopConfig
from slotwise.schemas.events import (
    OrderScheduleCanceled,
    OrderScheduled,
    OrderScheduleUpdated,
    OutboundEvent,
    RecommendationSelected,
    RecommendationViewed,
)
from slotwise.tools import webhook_client

logger = logging.getLogger(__name__)


class DeliveryState(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    DELIVERED = "delivered"
    DEAD_LETTERED = "dead_lettered"


TERMINAL_STATES = (DeliveryState.DELIVERED, DeliveryState.DEAD_LETTERED)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, EventDeliveryFailure) and error.retryable


class DeliveryTarget(BaseModel):
    """Per-shop delivery settings frozen at record time."""
    shop_id: str
    url: str
    secret: str
    retry_ceiling: int
    backoff_seconds: float

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_config(cls, config: ShopConfig) -> Optional["DeliveryTarget"]:
        if not config.webhook_url:
            return None
        return cls(
            shop_id=config.shop_id,
            url=config.webhook_url,
            secret=config.webhook_secret,
            retry_ceiling=config.retry_ceiling,
            backoff_seconds=config.retry_backoff_seconds,
        )


class OutboxRecord:
    """One recorded event and its delivery progress."""

    def __init__(
        self,
        event: OutboundEvent,
        target: DeliveryTarget,
        key: str,
        body: bytes,
        schema_version: str,
        trace_id: str,
    ):
        self.id = str(uuid.uuid4())
        self.event = event
        self.target = target
        self.idempotency_key = key
        self.body = body
        self.schema_version = schema_version
        self.trace_id = trace_id
        self.state = DeliveryState.PENDING
        self.attempts = 0
        self.last_error: Optional[str] = None
        self.created_at = datetime.now(timezone.utc)
        self.updated_at = self.created_at

    @property
    def event_type(self) -> str:
        return self.event.event_type

    def headers(self) -> Dict[str, str]:
        return {
            SIGNATURE_HEADER_NAME: sign(self.body, self.target.secret),
            EVENT_TYPE_HEADER_NAME: self.event_type,
            SCHEMA_VERSION_HEADER_NAME: self.schema_version,
            IDEMPOTENCY_HEADER_NAME: self.idempotency_key,
            TRACE_HEADER_NAME: self.trace_id,
        }

    def transition(self, state: DeliveryState, error: Optional[str] = None) -> None:
        self.state = state
        self.last_error = error
        self.updated_at = datetime.now(timezone.utc)


# ============================================================================
# Event Identity
# ============================================================================

def identity_parts(event: OutboundEvent) -> Tuple[str, str, str]:
    """
    (eventType, primary id, secondary id) for an event.

    Raises:
        TypeError: for anything outside the closed set of event kinds
    """
    if isinstance(event, (OrderScheduled, OrderScheduleUpdated, OrderScheduleCanceled)):
        return event.event_type, event.data.order_id, event.data.slot_id
    elif isinstance(event, RecommendationViewed):
        return event.event_type, event.session_id, ""
    elif isinstance(event, RecommendationSelected):
        return event.event_type, event.session_id, event.selection_id
    raise TypeError(f"Unsupported event kind: {type(event).__name__}")


def event_key(event: OutboundEvent, schema_version: str) -> str:
    event_type, primary, secondary = identity_parts(event)
    return idempotency_key(event_type, primary, secondary, schema_version)


def event_body(event: OutboundEvent, key: str, schema_version: str) -> bytes:
    """Envelope {eventType, schemaVersion, idempotencyKey, payload} as canonical JSON."""
    payload = event.model_dump(mode="json", by_alias=True, exclude={"event_type"})
    return canonical_body({
        "eventType": event.event_type,
        "schemaVersion": schema_version,
        "idempotencyKey": key,
        "payload": payload,
    })


# ============================================================================
# Emitter
# ============================================================================

class EventEmitter:
    """
    Thread-safe outbox plus async delivery with retry and dead-lettering.
    """

    def __init__(
        self,
        schema_version: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_backoff_seconds: float = thresholds.MAX_RETRY_BACKOFF_SECONDS,
        retention_seconds: float = thresholds.DELIVERED_RETENTION_SECONDS,
        max_dead_letters: int = thresholds.MAX_DEAD_LETTERS,
    ):
        self.schema_version = schema_version or settings.EVENT_SCHEMA_VERSION
        self._client = client
        self._max_backoff = max_backoff_seconds
        self._retention = timedelta(seconds=retention_seconds)
        self._max_dead_letters = max_dead_letters
        self._lock = threading.Lock()
        self._records: Dict[str, OutboxRecord] = {}
        self._by_key: Dict[str, str] = {}
        self._pending: Deque[str] = deque()

    # ==================== Recording ====================

    def record(self, event: OutboundEvent, config: ShopConfig) -> Optional[OutboxRecord]:
        """
        Append an event to the outbox.

        Returns:
            The outbox record, the existing record when an event with the same
            idempotency key was already recorded, or None when the shop has
            no webhook configured
        """
        target = DeliveryTarget.from_config(config)
        if target is None:
            logger.debug(f"No webhook for shop {config.shop_id}, dropping {event.event_type}")
            return None

        key = event_key(event, self.schema_version)
        body = event_body(event, key, self.schema_version)

        with self._lock:
            existing = self._by_key.get(key)
            if existing is not None:
                logger.info(f"Duplicate {event.event_type} suppressed (key={key[:12]})")
                return self._records[existing]
            record = OutboxRecord(event, target, key, body, self.schema_version, get_trace_id())
            self._records[record.id] = record
            self._by_key[key] = record.id
            self._pending.append(record.id)

        logger.debug(f"Recorded {event.event_type} for shop {config.shop_id} (key={key[:12]})")
        return record

    def _take_pending(self) -> List[OutboxRecord]:
        with self._lock:
            taken = [self._records[record_id] for record_id in self._pending]
            self._pending.clear()
        return taken

    # ==================== Inspection ====================

    def records(self, state: Optional[DeliveryState] = None) -> List[OutboxRecord]:
        with self._lock:
            records = list(self._records.values())
        if state is None:
            return records
        return [r for r in records if r.state == state]

    def dead_letters(self) -> List[OutboxRecord]:
        return self.records(DeliveryState.DEAD_LETTERED)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # ==================== Delivery ====================

    def _mark_retrying(self, record: OutboxRecord):
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            record.transition(DeliveryState.RETRYING, str(error) if error else None)
            logger.warning(
                f"Delivery of {record.event_type} to shop {record.target.shop_id} failed "
                f"(attempt {retry_state.attempt_number}/{record.target.retry_ceiling}): {error}"
            )
        return before_sleep

    async def deliver(self, record: OutboxRecord) -> DeliveryState:
        """
        Deliver one record until acknowledged or the retry budget is spent.

        Never raises; the final state tells the outcome.
        """
        if record.state in TERMINAL_STATES:
            return record.state

        bind_request_context(trace_id=record.trace_id, shop_id=record.target.shop_id)
        target = record.target
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(target.retry_ceiling),
                wait=wait_exponential(multiplier=target.backoff_seconds, max=self._max_backoff),
                retry=retry_if_exception(_is_retryable),
                before_sleep=self._mark_retrying(record),
                reraise=True,
            ):
                with attempt:
                    record.attempts += 1
                    await webhook_client.post_event(
                        target.url, record.body, record.headers(), client=self._client
                    )
        except EventDeliveryFailure as e:
            record.transition(DeliveryState.DEAD_LETTERED, e.message)
            logger.error(
                f"Dead-lettered {record.event_type} for shop {target.shop_id} after "
                f"{record.attempts} attempts (key={record.idempotency_key[:12]}): {e.message}"
            )
            return record.state
        except Exception as e:
            record.transition(DeliveryState.DEAD_LETTERED, f"{type(e).__name__}: {e}")
            logger.exception(
                f"Dead-lettered {record.event_type} for shop {target.shop_id} on unexpected error "
                f"(key={record.idempotency_key[:12]})"
            )
            return record.state

        record.transition(DeliveryState.DELIVERED)
        logger.info(f"Delivered {record.event_type} for shop {target.shop_id} in {record.attempts} attempt(s)")
        return record.state

    async def dispatch_pending(self) -> int:
        """
        Deliver everything currently pending.

        Returns:
            Number of records that reached DELIVERED
        """
        records = self._take_pending()
        if not records:
            return 0
        states = await asyncio.gather(
            *(self.deliver(record) for record in records), return_exceptions=True
        )
        for record, state in zip(records, states):
            if isinstance(state, BaseException):
                record.transition(DeliveryState.DEAD_LETTERED, f"{type(state).__name__}: {state}")
                logger.error(f"Dead-lettered {record.event_type} for shop {record.target.shop_id}: {state!r}")
        return sum(1 for state in states if state == DeliveryState.DELIVERED)

    def prune(self, now: Optional[datetime] = None) -> int:
        """
        Drop delivered records past the retention window and the oldest
        dead letters beyond the cap.

        Returns:
            Number of records removed
        """
        cutoff = (now or datetime.now(timezone.utc)) - self._retention
        with self._lock:
            expired = [
                r for r in self._records.values()
                if r.state == DeliveryState.DELIVERED and r.updated_at <= cutoff
            ]
            dead = sorted(
                (r for r in self._records.values() if r.state == DeliveryState.DEAD_LETTERED),
                key=lambda r: r.updated_at,
            )
            expired.extend(dead[:max(0, len(dead) - self._max_dead_letters)])
            for record in expired:
                del self._records[record.id]
                if self._by_key.get(record.idempotency_key) == record.id:
                    del self._by_key[record.idempotency_key]
        if expired:
            logger.debug(f"Pruned {len(expired)} outbox records")
        return len(expired)

    async def run(self, stop: asyncio.Event, poll_interval: Optional[float] = None) -> None:
        """Background loop: dispatch pending events until stop is set."""
        interval = poll_interval if poll_interval is not None else settings.EMITTER_POLL_INTERVAL
        logger.info(f"Event emitter loop started (poll every {interval}s)")
        while not stop.is_set():
            try:
                await self.dispatch_pending()
                self.prune()
            except Exception:
                logger.exception("Event emitter dispatch cycle failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        # Flush what was recorded before shutdown
        await self.dispatch_pending()
        logger.info("Event emitter loop stopped")
