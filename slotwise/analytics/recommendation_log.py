"""
Recommendation Analytics

Append-only RecommendationLog plus the customer preference store that
selections feed.

The scoring path never reads the log. It only reads preferences, and
those change only through learn_from_selection().

Usage:
    log = RecommendationLog()
    log.append(RecommendationLogEntry(...))

    store = PreferenceStore()
    store.learn_from_selection("shop-1", "cust-9", slot=selected_slot)
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from slotwise.schemas.domain import CustomerPreferences, Slot
from slotwise.schemas.events import CandidateShown

logger = logging.getLogger(__name__)


class RecommendationLogEntry(BaseModel):
    """One view or selection, as recorded for analytics."""
    shop_id: str
    session_id: str
    customer_id: Optional[str] = None
    candidates_shown: List[CandidateShown] = Field(default_factory=list)
    selection: Optional[str] = None
    was_recommended: Optional[bool] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RecommendationLog:
    """Thread-safe, append-only list of log entries."""

    def __init__(self):
        self._entries: List[RecommendationLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: RecommendationLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
        logger.debug(
            f"Logged recommendation {'selection' if entry.selection else 'view'} "
            f"session={entry.session_id} candidates={len(entry.candidates_shown)}"
        )

    def entries(self, shop_id: Optional[str] = None) -> Tuple[RecommendationLogEntry, ...]:
        with self._lock:
            entries = tuple(self._entries)
        if shop_id is None:
            return entries
        return tuple(e for e in entries if e.shop_id == shop_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _append_unique(values: List[str], value: str) -> List[str]:
    if not value or value in values:
        return values
    return values + [value]


class PreferenceStore:
    """CustomerPreferences keyed by (shop_id, customer_id)."""

    def __init__(self):
        self._preferences: Dict[Tuple[str, str], CustomerPreferences] = {}
        self._lock = threading.Lock()

    def get(self, shop_id: str, customer_id: Optional[str]) -> Optional[CustomerPreferences]:
        if not customer_id:
            return None
        with self._lock:
            return self._preferences.get((shop_id, customer_id))

    def put(self, shop_id: str, preferences: CustomerPreferences) -> None:
        with self._lock:
            self._preferences[(shop_id, preferences.customer_id)] = preferences

    def learn_from_selection(
        self,
        shop_id: str,
        customer_id: str,
        slot: Optional[Slot] = None,
        location_id: Optional[str] = None,
    ) -> CustomerPreferences:
        """
        Fold one selection into the customer's preferences.

        A slot selection adds its weekday name, its "HH:MM-HH:MM" window and
        its location; a location selection adds the location only. Each
        selection counts as one order.
        """
        day = slot.weekday_name if slot else ""
        window = (
            f"{slot.time_start.strftime('%H:%M')}-{slot.time_end.strftime('%H:%M')}" if slot else ""
        )
        location = slot.location_id if slot else (location_id or "")

        with self._lock:
            current = self._preferences.get((shop_id, customer_id)) or CustomerPreferences(
                customer_id=customer_id
            )
            updated = current.model_copy(update={
                "preferred_days": _append_unique(current.preferred_days, day),
                "preferred_times": _append_unique(current.preferred_times, window),
                "preferred_location_ids": _append_unique(current.preferred_location_ids, location),
                "total_orders": current.total_orders + 1,
                "last_order_at": datetime.now(timezone.utc),
            })
            self._preferences[(shop_id, customer_id)] = updated

        logger.info(f"Updated preferences for customer {customer_id} ({updated.total_orders} orders)")
        return updated
