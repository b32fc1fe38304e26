"""
Shared fixtures.

The sample shop ("shop-1") used across the suite:
- L1: delivery + pickup store in central London, delivery template 09:00-12:00
- L2: pickup-only store ~10 km north-west, pickup template 10:00-12:00
- Z1: postcodes E1..E9ZZZZ, excluding E1 9ZZ, served by L1 and L2
- R1: zone rule with a 14:00 cutoff, 2h lead time, 60 minute slots of capacity 2

The clock is frozen at Monday 2026-03-02 08:00 UTC.
"""

from datetime import date, datetime, timezone

import httpx
import pytest

FIXED_NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 2)
SHOP_ID = "shop-1"


def sample_shop(**config_overrides) -> dict:
    config = {"shop_id": SHOP_ID, "horizon_days": 7}
    config.update(config_overrides)
    return {
        "config": config,
        "locations": [
            {
                "id": "L1",
                "shop_id": config["shop_id"],
                "name": "City Store",
                "address": "1 High Street",
                "latitude": 51.5074,
                "longitude": -0.1278,
                "timezone": "UTC",
            },
            {
                "id": "L2",
                "shop_id": config["shop_id"],
                "name": "North Depot",
                "address": "2 Depot Road",
                "latitude": 51.5800,
                "longitude": -0.2200,
                "timezone": "UTC",
                "supports_delivery": False,
            },
        ],
        "zones": [
            {
                "id": "Z1",
                "shop_id": config["shop_id"],
                "name": "East",
                "coverage": {"kind": "postcode_range", "start": "E1", "end": "E9ZZZZ"},
                "excluded_postcodes": ["E1 9ZZ"],
                "location_ids": ["L1", "L2"],
                "created_at": "2026-01-01T00:00:00Z",
            },
        ],
        "rules": [
            {
                "id": "R1",
                "zone_id": "Z1",
                "cutoff_time": "14:00",
                "lead_time_hours": 2,
                "slot_duration_minutes": 60,
                "slot_capacity": 2,
            },
        ],
        "templates": (
            [
                {
                    "id": f"T-L1-{day}",
                    "location_id": "L1",
                    "day_of_week": day,
                    "start_time": "09:00",
                    "end_time": "12:00",
                    "fulfillment_type": "delivery",
                }
                for day in range(7)
            ]
            + [
                {
                    "id": f"T-L2-{day}",
                    "location_id": "L2",
                    "day_of_week": day,
                    "start_time": "10:00",
                    "end_time": "12:00",
                    "fulfillment_type": "pickup",
                }
                for day in range(7)
            ]
        ),
    }


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def registry():
    from slotwise.catalog.registry import ShopRegistry

    registry = ShopRegistry()
    shop = sample_shop()
    registry.register_shop(
        shop["config"],
        locations=shop["locations"],
        zones=shop["zones"],
        rules=shop["rules"],
        templates=shop["templates"],
        today=TODAY,
    )
    return registry


@pytest.fixture
def webhook_calls():
    """Requests received by the mocked webhook, in order."""
    return []


@pytest.fixture
def webhook_client(webhook_calls):
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(request)
        return httpx.Response(200, json={"ok": True})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def services(registry, clock, webhook_client):
    from slotwise.services.container import Services

    return Services(registry=registry, clock=clock, webhook_client=webhook_client)


@pytest.fixture
def client(services):
    from fastapi.testclient import TestClient
    from slotwise.main import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client
