"""
Capacity Ledger

Guards the booked count of every slot. The only mutable scheduling state
in the service lives here.

Concurrency model:
- One threading.Lock per slot; unrelated slots never contend
- A registry lock guards only the creation and replacement of entries
- transfer() takes both slot locks in ascending slot id order, so two
  transfers crossing the same pair of slots cannot deadlock
- Every entry carries a version that increases on each mutation;
  callers may pass expected_version for compare-and-swap semantics
- No I/O happens while a slot lock is held
- prune_before() drops past, unbooked entries; a caller still holding one
  sees it as unknown

Invariant: 0 <= booked_count <= capacity for every slot, at all times.

Usage:
    ledger = CapacityLedger()
    ledger.register(slot)
    ledger.reserve(slot.id)        # raises CapacityExceededError when full
    ledger.transfer(old_id, new_id)
    ledger.release(slot.id)
"""

import logging
import threading
from datetime import date
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict

from slotwise.core.errors import (
    CapacityExceededError,
    ConcurrencyConflictError,
    LedgerStateError,
    NotFoundError,
    field_issue,
)
from slotwise.schemas.domain import Slot

logger = logging.getLogger(__name__)


class SlotCapacity(BaseModel):
    """Read-only view of one ledger entry."""
    slot_id: str
    capacity: int
    booked_count: int
    version: int

    model_config = ConfigDict(frozen=True)

    @property
    def remaining(self) -> int:
        return self.capacity - self.booked_count

    @property
    def utilization(self) -> float:
        return self.booked_count / self.capacity


class _Entry:
    __slots__ = ("slot", "capacity", "booked_count", "version", "lock", "retired")

    def __init__(self, slot: Slot):
        self.slot = slot
        self.capacity = slot.capacity
        self.booked_count = 0
        self.version = 0
        self.lock = threading.Lock()
        self.retired = False

    def view(self) -> SlotCapacity:
        return SlotCapacity(
            slot_id=self.slot.id,
            capacity=self.capacity,
            booked_count=self.booked_count,
            version=self.version,
        )


class CapacityLedger:
    """
    Per-slot booked counters with atomic reserve, release and transfer.
    """

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}
        self._registry_lock = threading.Lock()

    # ==================== Registration ====================

    def register(self, slot: Slot) -> SlotCapacity:
        """
        Insert a slot, or refresh an existing one in place.

        Regeneration keeps the booked count. A capacity lowered below the
        current booked count is clamped to the booked count, since existing
        bookings are never revoked implicitly.
        """
        with self._registry_lock:
            entry = self._entries.get(slot.id)
            if entry is None:
                entry = _Entry(slot)
                self._entries[slot.id] = entry
                return entry.view()

        with entry.lock:
            capacity = slot.capacity
            if capacity < entry.booked_count:
                logger.warning(
                    f"Slot {slot.id} capacity {capacity} below booked {entry.booked_count}, clamping"
                )
                capacity = entry.booked_count
            if capacity != entry.capacity or slot != entry.slot:
                entry.version += 1
            entry.slot = slot
            entry.capacity = capacity
            return entry.view()

    def register_many(self, slots: Iterable[Slot]) -> int:
        count = 0
        for slot in slots:
            self.register(slot)
            count += 1
        return count

    def prune_before(self, cutoff: date) -> int:
        """
        Drop entries dated before cutoff that hold no bookings.

        Booked entries stay so their orders can still be rescheduled or
        canceled; they become prunable once released.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._registry_lock:
            for slot_id, entry in list(self._entries.items()):
                if entry.slot.date >= cutoff:
                    continue
                with entry.lock:
                    if entry.booked_count > 0:
                        continue
                    entry.retired = True
                del self._entries[slot_id]
                removed += 1
        if removed:
            logger.info(f"Pruned {removed} past slots before {cutoff}")
        return removed

    def _entry(self, slot_id: str) -> _Entry:
        entry = self._entries.get(slot_id)
        if entry is None:
            raise NotFoundError(
                f"Unknown slot {slot_id}",
                details=[field_issue("slotId", "unknown slot")],
            )
        return entry

    # ==================== Mutations ====================

    def reserve(self, slot_id: str, expected_version: Optional[int] = None) -> SlotCapacity:
        """
        Take one unit of capacity.

        Raises:
            CapacityExceededError: slot is full at the instant of the update
            ConcurrencyConflictError: expected_version given and stale
            NotFoundError: unknown slot
        """
        entry = self._entry(slot_id)
        with entry.lock:
            self._check_live(entry)
            self._check_version(entry, expected_version)
            if entry.booked_count >= entry.capacity:
                logger.info(f"Reserve rejected, slot {slot_id} full ({entry.capacity})")
                raise CapacityExceededError(slot_id)
            entry.booked_count += 1
            entry.version += 1
            return entry.view()

    def release(self, slot_id: str, expected_version: Optional[int] = None) -> SlotCapacity:
        """
        Give back one unit of capacity.

        Raises:
            LedgerStateError: nothing is booked on the slot
            ConcurrencyConflictError: expected_version given and stale
            NotFoundError: unknown slot
        """
        entry = self._entry(slot_id)
        with entry.lock:
            self._check_live(entry)
            self._check_version(entry, expected_version)
            if entry.booked_count == 0:
                raise LedgerStateError(
                    f"Release on slot {slot_id} without a matching reservation",
                    details=[field_issue("slotId", "nothing booked")],
                )
            entry.booked_count -= 1
            entry.version += 1
            return entry.view()

    def transfer(
        self,
        old_slot_id: str,
        new_slot_id: str,
        expected_old_version: Optional[int] = None,
        expected_new_version: Optional[int] = None,
    ) -> SlotCapacity:
        """
        Release old and reserve new as one atomic unit.

        Either both counters change or neither does. Transferring a slot
        onto itself is a successful no-op.

        Returns:
            View of the new slot after the transfer
        """
        old = self._entry(old_slot_id)
        new = self._entry(new_slot_id)
        if old is new:
            with old.lock:
                self._check_live(old)
                self._check_version(old, expected_old_version)
                if old.booked_count == 0:
                    raise LedgerStateError(
                        f"Transfer from slot {old_slot_id} without a matching reservation",
                        details=[field_issue("slotId", "nothing booked")],
                    )
                return old.view()

        first, second = sorted((old, new), key=lambda e: e.slot.id)
        with first.lock, second.lock:
            self._check_live(old)
            self._check_live(new)
            self._check_version(old, expected_old_version)
            self._check_version(new, expected_new_version)
            if old.booked_count == 0:
                raise LedgerStateError(
                    f"Transfer from slot {old_slot_id} without a matching reservation",
                    details=[field_issue("slotId", "nothing booked")],
                )
            if new.booked_count >= new.capacity:
                logger.info(f"Transfer rejected, slot {new_slot_id} full ({new.capacity})")
                raise CapacityExceededError(new_slot_id)
            old.booked_count -= 1
            old.version += 1
            new.booked_count += 1
            new.version += 1
            return new.view()

    @staticmethod
    def _check_live(entry: _Entry) -> None:
        if entry.retired:
            raise NotFoundError(
                f"Unknown slot {entry.slot.id}",
                details=[field_issue("slotId", "unknown slot")],
            )

    @staticmethod
    def _check_version(entry: _Entry, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != entry.version:
            raise ConcurrencyConflictError(f"Slot {entry.slot.id}", expected_version, entry.version)

    # ==================== Reads ====================

    def snapshot(self, slot_id: str) -> SlotCapacity:
        entry = self._entry(slot_id)
        with entry.lock:
            return entry.view()

    def remaining(self, slot_id: str) -> int:
        return self.snapshot(slot_id).remaining

    def slot(self, slot_id: str) -> Slot:
        return self._entry(slot_id).slot

    def available(self, slot_ids: Iterable[str]) -> Dict[str, SlotCapacity]:
        """Snapshots of the given slots that still have capacity; unknown ids are skipped."""
        result = {}
        for slot_id in slot_ids:
            entry = self._entries.get(slot_id)
            if entry is None:
                continue
            with entry.lock:
                view = entry.view()
            if view.remaining > 0:
                result[slot_id] = view
        return result
