"""
Slot Generator Tests

Tests for template expansion:
- deterministic ids and ordering
- duration cutting and capacity precedence
- blackout dates and "now" pruning
- regeneration through the registry keeping booked counts

Run: pytest slotwise/tests/test_slot_generator.py -v
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from slotwise.tests.conftest import SHOP_ID, TODAY, sample_shop

MONDAY = date(2026, 3, 2)


def template(**overrides):
    from slotwise.schemas.domain import SlotTemplate

    values = {
        "id": "T1",
        "location_id": "L1",
        "day_of_week": 0,
        "start_time": time(9, 0),
        "end_time": time(12, 0),
        "fulfillment_type": "delivery",
    }
    values.update(overrides)
    return SlotTemplate(**values)


def rule(**overrides):
    from slotwise.schemas.domain import EffectiveRule

    return EffectiveRule(**overrides)


# ==================== Expansion ====================

def test_generation_is_deterministic():
    from slotwise.algorithms.slot_generator import generate_slots

    templates = [template(), template(id="T2", day_of_week=2, capacity=4)]
    rules = {"L1": rule(slot_duration_minutes=60, slot_capacity=2)}

    first = generate_slots(templates, rules, MONDAY, MONDAY + timedelta(days=13))
    second = generate_slots(list(reversed(templates)), rules, MONDAY, MONDAY + timedelta(days=13))

    assert first == second
    assert len(first) == 12
    assert first[0].id == "L1:delivery:2026-03-02:0900-1000"
    assert [s.date for s in first] == sorted(s.date for s in first)


def test_only_matching_weekdays_are_expanded():
    from slotwise.algorithms.slot_generator import generate_slots

    slots = generate_slots([template(day_of_week=4)], {}, MONDAY, MONDAY + timedelta(days=6))

    assert {s.date for s in slots} == {date(2026, 3, 6)}
    assert all(s.weekday_name == "Friday" for s in slots)


def test_trailing_partial_window_is_dropped():
    from slotwise.algorithms.slot_generator import generate_slots

    slots = generate_slots([template(duration_minutes=50)], {}, MONDAY, MONDAY)

    assert [(s.time_start, s.time_end) for s in slots] == [
        (time(9, 0), time(9, 50)),
        (time(9, 50), time(10, 40)),
        (time(10, 40), time(11, 30)),
    ]


def test_template_duration_overrides_rule_duration():
    from slotwise.algorithms.slot_generator import generate_slots

    slots = generate_slots(
        [template(duration_minutes=90)], {"L1": rule(slot_duration_minutes=30)}, MONDAY, MONDAY
    )

    assert len(slots) == 2


def test_window_without_duration_is_one_slot():
    from slotwise.algorithms.slot_generator import generate_slots

    slots = generate_slots([template()], {}, MONDAY, MONDAY)

    assert len(slots) == 1
    assert (slots[0].time_start, slots[0].time_end) == (time(9, 0), time(12, 0))


def test_capacity_precedence():
    from slotwise.algorithms.slot_generator import generate_slots

    with_template = generate_slots([template(capacity=7)], {"L1": rule(slot_capacity=3)}, MONDAY, MONDAY)
    with_rule = generate_slots([template()], {"L1": rule(slot_capacity=3)}, MONDAY, MONDAY)
    with_default = generate_slots([template()], {}, MONDAY, MONDAY)

    assert with_template[0].capacity == 7
    assert with_rule[0].capacity == 3
    assert with_default[0].capacity == 1


def test_blackout_dates_produce_no_slots():
    from slotwise.algorithms.slot_generator import generate_slots

    rules = {"L1": rule(blackout_dates=frozenset({MONDAY}))}
    slots = generate_slots([template()], rules, MONDAY, MONDAY + timedelta(days=7))

    assert [s.date for s in slots] == [date(2026, 3, 9)]


def test_overlapping_templates_collapse():
    from slotwise.algorithms.slot_generator import generate_slots

    slots = generate_slots([template(), template(id="T-dup")], {}, MONDAY, MONDAY)

    assert len(slots) == 1


def test_now_prunes_slots_inside_lead_time():
    from slotwise.algorithms.slot_generator import generate_slots
    from slotwise.schemas.domain import Location

    location = Location(id="L1", shop_id=SHOP_ID, name="City Store")
    rules = {"L1": rule(slot_duration_minutes=60, lead_time=timedelta(hours=2))}
    now = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

    slots = generate_slots([template()], rules, MONDAY, MONDAY, now=now, locations={"L1": location})

    assert [s.time_start for s in slots] == [time(10, 0), time(11, 0)]


def test_empty_range():
    from slotwise.algorithms.slot_generator import generate_slots

    assert generate_slots([template()], {}, MONDAY, MONDAY - timedelta(days=1)) == []


# ==================== Regeneration ====================

def test_regeneration_keeps_booked_counts(registry):
    slot_id = "L1:delivery:2026-03-03:1000-1100"
    ledger = registry.ledger(SHOP_ID)
    ledger.reserve(slot_id)

    shop = sample_shop()
    shop["rules"][0]["slot_capacity"] = 5
    registry.register_shop(
        shop["config"],
        locations=shop["locations"],
        zones=shop["zones"],
        rules=shop["rules"],
        templates=shop["templates"],
        today=TODAY,
    )

    view = registry.ledger(SHOP_ID).snapshot(slot_id)
    assert view.booked_count == 1
    assert view.capacity == 5


def test_regeneration_prunes_past_unbooked_slots(registry):
    from slotwise.core.errors import NotFoundError

    booked_id = "L1:delivery:2026-03-02:1000-1100"
    registry.ledger(SHOP_ID).reserve(booked_id)

    registry.regenerate_slots(SHOP_ID, today=TODAY + timedelta(days=1))

    ledger = registry.ledger(SHOP_ID)
    with pytest.raises(NotFoundError):
        ledger.snapshot("L1:delivery:2026-03-02:1100-1200")
    assert ledger.snapshot(booked_id).booked_count == 1
    assert ledger.snapshot("L1:delivery:2026-03-09:1100-1200").booked_count == 0


def test_registry_horizon_and_filters(registry):
    delivery = registry.slots(SHOP_ID, fulfillment_type="delivery")
    pickup = registry.slots(SHOP_ID, location_id="L2")

    # 7 days x 3 hourly delivery slots, 7 days x 2 hourly pickup slots
    assert len(delivery) == 21
    assert len(pickup) == 14
    assert all(s.fulfillment_type == "pickup" for s in pickup)
    assert max(s.date for s in delivery) == TODAY + timedelta(days=6)


def test_invalid_catalog_is_rejected_before_registration():
    from slotwise.catalog.registry import ShopRegistry
    from slotwise.core.errors import ConfigurationError

    shop = sample_shop()
    shop["templates"][0]["location_id"] = "nowhere"
    registry = ShopRegistry()

    with pytest.raises(ConfigurationError) as exc_info:
        registry.register_shop(
            shop["config"],
            locations=shop["locations"],
            zones=shop["zones"],
            rules=shop["rules"],
            templates=shop["templates"],
            today=TODAY,
        )

    assert exc_info.value.details[0]["field"] == "templates.T-L1-0.location_id"
    assert registry.shop_ids() == []


# ==================== Run Tests ====================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
