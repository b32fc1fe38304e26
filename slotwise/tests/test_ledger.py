"""
Capacity Ledger Tests

Tests for the concurrency-safe slot counters:
- reserve/release bounds under contention
- atomic transfer, including crossed transfers
- optimistic versions
- regeneration keeping booked counts
- pruning of past, unbooked slots

Run: pytest slotwise/tests/test_ledger.py -v
"""

import threading
from datetime import date, time

import pytest


def make_slot(slot_id: str = "L1:delivery:2026-03-03:1000-1100", capacity: int = 2):
    from slotwise.schemas.domain import Slot

    return Slot(
        id=slot_id,
        location_id="L1",
        date=date(2026, 3, 3),
        time_start=time(10, 0),
        time_end=time(11, 0),
        capacity=capacity,
    )


@pytest.fixture
def ledger():
    from slotwise.booking.ledger import CapacityLedger

    return CapacityLedger()


# ==================== Reserve / Release ====================

def test_concurrent_reserves_never_overbook(ledger):
    """Capacity 2 and ten simultaneous reservations: exactly two win."""
    from slotwise.core.errors import CapacityExceededError

    slot = make_slot(capacity=2)
    ledger.register(slot)

    barrier = threading.Barrier(10)
    results = []
    results_lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            ledger.reserve(slot.id)
            outcome = "ok"
        except CapacityExceededError:
            outcome = "full"
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert results.count("ok") == 2
    assert results.count("full") == 8
    assert ledger.snapshot(slot.id).booked_count == 2


def test_reserve_then_release_restores_remaining(ledger):
    slot = make_slot(capacity=3)
    ledger.register(slot)
    before = ledger.snapshot(slot.id)

    ledger.reserve(slot.id)
    assert ledger.remaining(slot.id) == 2

    after = ledger.release(slot.id)
    assert after.remaining == before.remaining
    assert after.version == before.version + 2


def test_reserve_full_slot_raises(ledger):
    from slotwise.core.errors import CapacityExceededError

    slot = make_slot(capacity=1)
    ledger.register(slot)
    ledger.reserve(slot.id)

    with pytest.raises(CapacityExceededError) as exc_info:
        ledger.reserve(slot.id)

    assert exc_info.value.status_code == 409
    assert ledger.snapshot(slot.id).booked_count == 1


def test_release_without_reservation_raises(ledger):
    from slotwise.core.errors import LedgerStateError

    slot = make_slot()
    ledger.register(slot)

    with pytest.raises(LedgerStateError):
        ledger.release(slot.id)

    assert ledger.snapshot(slot.id).booked_count == 0


def test_unknown_slot_is_not_found(ledger):
    from slotwise.core.errors import NotFoundError

    with pytest.raises(NotFoundError):
        ledger.reserve("missing")


def test_stale_version_is_rejected_without_mutation(ledger):
    from slotwise.core.errors import ConcurrencyConflictError

    slot = make_slot()
    ledger.register(slot)
    view = ledger.reserve(slot.id)

    with pytest.raises(ConcurrencyConflictError):
        ledger.reserve(slot.id, expected_version=view.version - 1)

    assert ledger.snapshot(slot.id).booked_count == 1
    assert ledger.reserve(slot.id, expected_version=view.version).booked_count == 2


# ==================== Transfer ====================

def test_transfer_moves_one_unit(ledger):
    old = make_slot("old", capacity=1)
    new = make_slot("new", capacity=1)
    ledger.register(old)
    ledger.register(new)
    ledger.reserve("old")

    view = ledger.transfer("old", "new")

    assert view.slot_id == "new"
    assert ledger.snapshot("old").booked_count == 0
    assert ledger.snapshot("new").booked_count == 1


def test_transfer_into_full_slot_changes_nothing(ledger):
    from slotwise.core.errors import CapacityExceededError

    ledger.register(make_slot("old", capacity=1))
    ledger.register(make_slot("new", capacity=1))
    ledger.reserve("old")
    ledger.reserve("new")
    old_before = ledger.snapshot("old")
    new_before = ledger.snapshot("new")

    with pytest.raises(CapacityExceededError):
        ledger.transfer("old", "new")

    assert ledger.snapshot("old") == old_before
    assert ledger.snapshot("new") == new_before


def test_transfer_onto_same_slot_is_noop(ledger):
    ledger.register(make_slot("a"))
    ledger.reserve("a")
    before = ledger.snapshot("a")

    assert ledger.transfer("a", "a") == before
    assert ledger.snapshot("a") == before


def test_crossed_transfers_do_not_deadlock(ledger):
    """A->B and B->A transfers racing on the same pair keep the total constant."""
    from slotwise.core.errors import CapacityExceededError, LedgerStateError

    ledger.register(make_slot("A", capacity=10))
    ledger.register(make_slot("B", capacity=10))
    for _ in range(5):
        ledger.reserve("A")
        ledger.reserve("B")

    def mover(source, target):
        for _ in range(200):
            try:
                ledger.transfer(source, target)
            except (CapacityExceededError, LedgerStateError):
                pass

    threads = [
        threading.Thread(target=mover, args=("A", "B")),
        threading.Thread(target=mover, args=("B", "A")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert not any(t.is_alive() for t in threads)
    a = ledger.snapshot("A").booked_count
    b = ledger.snapshot("B").booked_count
    assert a + b == 10
    assert 0 <= a <= 10 and 0 <= b <= 10


# ==================== Registration ====================

def test_register_keeps_booked_count_and_clamps_capacity(ledger):
    slot = make_slot(capacity=3)
    ledger.register(slot)
    ledger.reserve(slot.id)
    ledger.reserve(slot.id)

    view = ledger.register(slot.model_copy(update={"capacity": 1}))

    assert view.booked_count == 2
    assert view.capacity == 2
    assert view.remaining == 0


def test_available_skips_full_and_unknown_slots(ledger):
    ledger.register(make_slot("open", capacity=2))
    ledger.register(make_slot("full", capacity=1))
    ledger.reserve("full")

    available = ledger.available(["open", "full", "missing"])

    assert list(available) == ["open"]
    assert available["open"].remaining == 2


def test_prune_drops_past_unbooked_slots_only(ledger):
    from slotwise.core.errors import NotFoundError

    past_free = make_slot("past-free").model_copy(update={"date": date(2026, 3, 1)})
    past_booked = make_slot("past-booked").model_copy(update={"date": date(2026, 3, 1)})
    current = make_slot("current")
    for slot in (past_free, past_booked, current):
        ledger.register(slot)
    ledger.reserve("past-booked")

    assert ledger.prune_before(date(2026, 3, 2)) == 1

    with pytest.raises(NotFoundError):
        ledger.snapshot("past-free")
    assert ledger.snapshot("past-booked").booked_count == 1
    assert ledger.snapshot("current").booked_count == 0

    # Released later, the booked one goes on the next pass
    ledger.release("past-booked")
    assert ledger.prune_before(date(2026, 3, 2)) == 1


# ==================== Run Tests ====================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
