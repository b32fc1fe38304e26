"""
Eligibility Evaluator Tests

Tests for zone matching and rule checks:
- every rejection reason
- zone priority and creation-time tie-break
- location rules overriding zone rules
- cutoff evaluated in the location's timezone
- radius coverage
- rejected bookings leave the ledger untouched

Run: pytest slotwise/tests/test_eligibility.py -v
"""

from datetime import date, datetime, time, timezone

import pytest

from slotwise.tests.conftest import FIXED_NOW, SHOP_ID, TODAY, sample_shop


def build_registry(mutate=None, **config_overrides):
    from slotwise.catalog.registry import ShopRegistry

    shop = sample_shop(**config_overrides)
    if mutate is not None:
        mutate(shop)
    registry = ShopRegistry()
    registry.register_shop(
        shop["config"],
        locations=shop["locations"],
        zones=shop["zones"],
        rules=shop["rules"],
        templates=shop["templates"],
        today=TODAY,
    )
    return registry


def request(
    postcode="E1 6AN",
    fulfillment_type="delivery",
    candidate_date=date(2026, 3, 3),
    now=FIXED_NOW,
    latitude=None,
    longitude=None,
    **kwargs,
):
    from slotwise.algorithms.eligibility import EligibilityRequest
    from slotwise.schemas.domain import Address

    return EligibilityRequest(
        address=Address(postcode=postcode, latitude=latitude, longitude=longitude),
        fulfillment_type=fulfillment_type,
        candidate_date=candidate_date,
        now=now,
        **kwargs,
    )


@pytest.fixture
def catalog(registry):
    return registry.catalog(SHOP_ID)


# ==================== Zone Matching ====================

def test_in_zone_address_is_eligible(catalog):
    from slotwise.algorithms.eligibility import evaluate

    outcome = evaluate(request(), catalog)

    assert outcome.eligible is True
    assert outcome.zone.id == "Z1"
    assert outcome.location.id == "L1"
    assert outcome.rule.slot_capacity == 2


def test_pickup_picks_first_usable_location(catalog):
    from slotwise.algorithms.eligibility import evaluate

    outcome = evaluate(request(fulfillment_type="pickup"), catalog)

    assert outcome.eligible is True
    assert outcome.location.id == "L1"


def test_unknown_postcode_has_no_matching_zone(catalog):
    from slotwise.algorithms.eligibility import evaluate

    outcome = evaluate(request(postcode="SW1A 1AA"), catalog)

    assert outcome.eligible is False
    assert outcome.reason == "no_matching_zone"


def test_excluded_postcode_is_normalized_before_matching(catalog):
    from slotwise.algorithms.eligibility import evaluate

    outcome = evaluate(request(postcode="e1 9zz"), catalog)

    assert outcome.eligible is False
    assert outcome.reason == "excluded_postcode"


def test_fulfillment_type_unsupported():
    from slotwise.algorithms.eligibility import evaluate

    def pickup_only(shop):
        shop["zones"][0]["fulfillment_types"] = ["pickup"]

    catalog = build_registry(pickup_only).catalog(SHOP_ID)

    assert evaluate(request(), catalog).reason == "fulfillment_type_unsupported"
    assert evaluate(request(fulfillment_type="pickup"), catalog).eligible is True


def test_higher_priority_zone_wins():
    from slotwise.algorithms.eligibility import evaluate

    def overlapping(shop):
        shop["zones"].append({
            "id": "Z2",
            "shop_id": SHOP_ID,
            "coverage": {"kind": "postcode_list", "postcodes": ["E1 6AN"]},
            "location_ids": ["L1"],
            "priority": 5,
            "created_at": "2025-06-01T00:00:00Z",
        })

    outcome = evaluate(request(), build_registry(overlapping).catalog(SHOP_ID))

    assert outcome.zone.id == "Z2"


def test_equal_priority_prefers_most_recently_created_zone():
    from slotwise.algorithms.eligibility import evaluate

    def overlapping(shop):
        shop["zones"].append({
            "id": "Z0",
            "shop_id": SHOP_ID,
            "coverage": {"kind": "postcode_list", "postcodes": ["E1 6AN"]},
            "location_ids": ["L1"],
            "created_at": "2026-02-01T00:00:00Z",
        })

    outcome = evaluate(request(), build_registry(overlapping).catalog(SHOP_ID))

    assert outcome.zone.id == "Z0"


def test_radius_zone_uses_coordinates():
    from slotwise.algorithms.eligibility import evaluate

    def radius(shop):
        shop["zones"] = [{
            "id": "ZR",
            "shop_id": SHOP_ID,
            "coverage": {"kind": "radius", "location_id": "L1", "radius_km": 5},
            "location_ids": ["L1"],
            "created_at": "2026-01-01T00:00:00Z",
        }]
        shop["rules"] = []

    catalog = build_registry(radius).catalog(SHOP_ID)

    near = evaluate(request(postcode="WC2N 5DU", latitude=51.5080, longitude=-0.1281), catalog)
    far = evaluate(request(postcode="WC2N 5DU", latitude=52.2053, longitude=0.1218), catalog)
    unknown = evaluate(request(postcode="WC2N 5DU"), catalog)

    assert near.eligible is True
    assert far.reason == "no_matching_zone"
    assert unknown.reason == "no_matching_zone"


# ==================== Rule Checks ====================

def test_past_cutoff_for_today(catalog):
    from slotwise.algorithms.eligibility import evaluate

    late = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)

    assert evaluate(request(candidate_date=TODAY, now=late), catalog).reason == "past_cutoff"
    assert evaluate(request(candidate_date=date(2026, 3, 3), now=late), catalog).eligible is True


def test_before_lead_time_uses_slot_start(catalog):
    from slotwise.algorithms.eligibility import evaluate

    too_soon = evaluate(request(candidate_date=TODAY, candidate_start=time(9, 0)), catalog)
    just_enough = evaluate(request(candidate_date=TODAY, candidate_start=time(10, 0)), catalog)

    assert too_soon.reason == "before_lead_time"
    assert just_enough.eligible is True


def test_blackout_date_rejected():
    from slotwise.algorithms.eligibility import evaluate

    def blackout(shop):
        shop["rules"][0]["blackout_dates"] = ["2026-03-04"]

    catalog = build_registry(blackout).catalog(SHOP_ID)

    assert evaluate(request(candidate_date=date(2026, 3, 4)), catalog).reason == "blackout_date"
    assert evaluate(request(candidate_date=date(2026, 3, 5)), catalog).eligible is True


def test_location_rule_overrides_zone_rule():
    from slotwise.algorithms.eligibility import evaluate

    def late_store(shop):
        shop["rules"].append({"id": "R2", "location_id": "L1", "cutoff_time": "18:00"})

    catalog = build_registry(late_store).catalog(SHOP_ID)
    outcome = evaluate(
        request(candidate_date=TODAY, now=datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)),
        catalog,
    )

    assert outcome.eligible is True
    assert outcome.rule.cutoff_time == time(18, 0)
    # Unset fields still come from the zone rule
    assert outcome.rule.slot_capacity == 2


def test_cutoff_is_evaluated_in_location_timezone():
    from slotwise.algorithms.eligibility import evaluate

    def new_york(shop):
        for location in shop["locations"]:
            location["timezone"] = "America/New_York"

    catalog = build_registry(new_york).catalog(SHOP_ID)
    # 18:30 UTC is 13:30 in New York (EST), still before the 14:00 cutoff
    now = datetime(2026, 3, 2, 18, 30, tzinfo=timezone.utc)

    assert evaluate(request(candidate_date=TODAY, now=now), catalog).eligible is True


def test_naive_now_is_rejected():
    from pydantic import ValidationError as PydanticValidationError

    with pytest.raises(PydanticValidationError):
        request(now=datetime(2026, 3, 2, 8, 0))


# ==================== Helpers ====================

def test_require_eligible_raises_with_reason(catalog):
    from slotwise.algorithms.eligibility import require_eligible
    from slotwise.core.errors import IneligibleError

    with pytest.raises(IneligibleError) as exc_info:
        require_eligible(request(postcode="SW1A 1AA"), catalog)

    assert exc_info.value.reason == "no_matching_zone"
    assert exc_info.value.status_code == 422


def test_check_postcode_reports_services_and_locations(catalog):
    from slotwise.algorithms.eligibility import check_postcode
    from slotwise.schemas.domain import Address

    coverage = check_postcode(catalog, Address(postcode="E1 6AN"))

    assert coverage.eligible is True
    assert coverage.zone_id == "Z1"
    assert coverage.services == {"delivery": True, "pickup": True}
    assert [loc.id for loc in coverage.locations] == ["L1", "L2"]


def test_rejected_booking_does_not_touch_ledger(services):
    from slotwise.core.errors import IneligibleError
    from slotwise.schemas.domain import Address

    services.bookings.clock = lambda: datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
    slot_id = "L1:delivery:2026-03-02:1100-1200"
    ledger = services.registry.ledger(SHOP_ID)
    before = ledger.snapshot(slot_id)

    with pytest.raises(IneligibleError) as exc_info:
        services.bookings.book(SHOP_ID, "order-1", slot_id, "delivery", Address(postcode="E1 6AN"))

    assert exc_info.value.reason == "past_cutoff"
    assert ledger.snapshot(slot_id) == before


# ==================== Run Tests ====================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
