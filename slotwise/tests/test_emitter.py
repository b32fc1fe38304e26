"""
Event Emitter Tests

Tests for outbound webhook delivery:
- signed, idempotent envelopes
- retry with backoff, then dead-lettering
- duplicate suppression and shops without a webhook
- events recorded by the booking service after the ledger commits
- unusable webhook URLs and retention of finished records

Run: pytest slotwise/tests/test_emitter.py -v
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from slotwise.tests.conftest import SHOP_ID

WEBHOOK_URL = "https://hooks.example.com/slotwise"
SECRET = "s3cret"


def webhook_config(**overrides):
    from slotwise.schemas.domain import ShopConfig

    values = {
        "shop_id": SHOP_ID,
        "webhook_url": WEBHOOK_URL,
        "webhook_secret": SECRET,
        "retry_ceiling": 3,
        "retry_backoff_seconds": 0,
    }
    values.update(overrides)
    return ShopConfig(**values)


def scheduled_event(order_id="order-1", slot_id="L1:delivery:2026-03-03:1000-1100"):
    from slotwise.schemas.events import BookingEventData, OrderScheduled

    return OrderScheduled(data=BookingEventData(
        shop_id=SHOP_ID,
        order_id=order_id,
        fulfillment_type="delivery",
        location_id="L1",
        scheduled_at=datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc),
        slot_id=slot_id,
    ))


def emitter_with(handler):
    from slotwise.events.emitter import EventEmitter

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EventEmitter(schema_version="1", client=client)


# ==================== Delivery ====================

@pytest.mark.asyncio
async def test_event_is_signed_and_delivered():
    from slotwise.events.emitter import DeliveryState
    from slotwise.events.signing import verify

    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(204)

    emitter = emitter_with(handler)
    record = emitter.record(scheduled_event(), webhook_config())

    delivered = await emitter.dispatch_pending()

    assert delivered == 1
    assert record.state == DeliveryState.DELIVERED
    assert record.attempts == 1

    request = received[0]
    body = request.content
    envelope = json.loads(body)
    assert str(request.url) == WEBHOOK_URL
    assert verify(body, SECRET, request.headers["x-slotwise-signature"])
    assert not verify(body, "wrong", request.headers["x-slotwise-signature"])
    assert request.headers["idempotency-key"] == record.idempotency_key
    assert request.headers["x-slotwise-event"] == "order.scheduled"
    assert envelope["eventType"] == "order.scheduled"
    assert envelope["schemaVersion"] == "1"
    assert envelope["payload"]["data"]["orderId"] == "order-1"
    assert envelope["payload"]["data"]["slotId"] == "L1:delivery:2026-03-03:1000-1100"


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    from slotwise.events.emitter import DeliveryState

    responses = iter([500, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(responses))

    emitter = emitter_with(handler)
    record = emitter.record(scheduled_event(), webhook_config())

    assert await emitter.dispatch_pending() == 1
    assert record.state == DeliveryState.DELIVERED
    assert record.attempts == 3


@pytest.mark.asyncio
async def test_exhausted_retries_dead_letter():
    from slotwise.events.emitter import DeliveryState

    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    emitter = emitter_with(handler)
    record = emitter.record(scheduled_event(), webhook_config())

    assert await emitter.dispatch_pending() == 0
    assert record.state == DeliveryState.DEAD_LETTERED
    assert record.attempts == 3
    assert len(calls) == 3
    assert "ConnectError" in record.last_error
    assert emitter.dead_letters() == [record]


@pytest.mark.asyncio
async def test_delivered_record_is_not_sent_again():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    emitter = emitter_with(handler)
    record = emitter.record(scheduled_event(), webhook_config())
    await emitter.dispatch_pending()

    await emitter.deliver(record)

    assert len(calls) == 1


def unparseable_url_config():
    from slotwise.schemas.domain import ShopConfig

    # Bypasses validation so the bad port only surfaces when httpx sends
    return ShopConfig.model_construct(
        shop_id="shop-2",
        webhook_url="https://hooks.example.com:abc/",
        webhook_secret=SECRET,
        retry_ceiling=3,
        retry_backoff_seconds=0,
    )


@pytest.mark.asyncio
async def test_unparseable_url_is_dead_lettered_without_retry():
    from slotwise.events.emitter import DeliveryState

    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    emitter = emitter_with(handler)
    broken = emitter.record(scheduled_event("order-1"), unparseable_url_config())
    healthy = emitter.record(scheduled_event("order-2"), webhook_config())

    assert await emitter.dispatch_pending() == 1
    assert broken.state == DeliveryState.DEAD_LETTERED
    assert broken.attempts == 1
    assert "Invalid webhook URL" in broken.last_error
    assert healthy.state == DeliveryState.DELIVERED
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_run_loop_keeps_delivering_after_a_broken_shop():
    import asyncio

    from slotwise.events.emitter import DeliveryState

    emitter = emitter_with(lambda request: httpx.Response(200))
    stop = asyncio.Event()
    task = asyncio.create_task(emitter.run(stop, poll_interval=0.01))

    broken = emitter.record(scheduled_event("order-1"), unparseable_url_config())
    await asyncio.sleep(0.05)
    later = emitter.record(scheduled_event("order-2"), webhook_config())
    await asyncio.sleep(0.05)
    stop.set()
    await task

    assert broken.state == DeliveryState.DEAD_LETTERED
    assert later.state == DeliveryState.DELIVERED


def test_webhook_url_must_parse():
    from slotwise.core.errors import ConfigurationError
    from slotwise.schemas.domain import load_shop_config

    with pytest.raises(ConfigurationError) as exc_info:
        load_shop_config({
            "shop_id": SHOP_ID,
            "webhook_url": "https://hooks.example.com:abc/",
            "webhook_secret": SECRET,
        })

    assert [d["field"] for d in exc_info.value.details] == ["webhook_url"]


# ==================== Retention ====================

@pytest.mark.asyncio
async def test_delivered_records_are_pruned_after_retention():
    from datetime import timedelta

    emitter = emitter_with(lambda request: httpx.Response(200))
    record = emitter.record(scheduled_event(), webhook_config())
    await emitter.dispatch_pending()

    assert emitter.prune() == 0
    assert emitter.records() == [record]

    assert emitter.prune(now=record.updated_at + timedelta(hours=2)) == 1
    assert emitter.records() == []

    # Once pruned, the same event is accepted as new
    again = emitter.record(scheduled_event(), webhook_config())
    assert again is not record
    assert emitter.pending_count() == 1


@pytest.mark.asyncio
async def test_dead_letters_are_capped_oldest_first():
    from slotwise.events.emitter import EventEmitter

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    emitter = EventEmitter(schema_version="1", client=client, max_dead_letters=2)
    records = [
        emitter.record(scheduled_event(f"order-{i}"), webhook_config(retry_ceiling=1))
        for i in range(3)
    ]
    for record in records:
        await emitter.deliver(record)

    assert emitter.prune() == 1
    assert emitter.dead_letters() == records[1:]


# ==================== Recording ====================

def test_idempotency_key_is_deterministic():
    from slotwise.events.emitter import event_key

    first = event_key(scheduled_event(), "1")

    assert first == event_key(scheduled_event(), "1")
    assert first != event_key(scheduled_event(order_id="order-2"), "1")
    assert first != event_key(scheduled_event(), "2")


def test_duplicate_event_is_suppressed():
    emitter = emitter_with(lambda request: httpx.Response(200))

    first = emitter.record(scheduled_event(), webhook_config())
    second = emitter.record(scheduled_event(), webhook_config())

    assert first is second
    assert emitter.pending_count() == 1


def test_shop_without_webhook_records_nothing():
    from slotwise.schemas.domain import ShopConfig

    emitter = emitter_with(lambda request: httpx.Response(200))

    assert emitter.record(scheduled_event(), ShopConfig(shop_id=SHOP_ID)) is None
    assert emitter.pending_count() == 0


def test_webhook_url_requires_secret():
    from slotwise.core.errors import ConfigurationError
    from slotwise.schemas.domain import load_shop_config

    with pytest.raises(ConfigurationError):
        load_shop_config({"shop_id": SHOP_ID, "webhook_url": WEBHOOK_URL})


def test_unknown_event_kind_is_rejected():
    from slotwise.events.emitter import identity_parts

    with pytest.raises(TypeError):
        identity_parts(object())


# ==================== Booking Integration ====================

@pytest.mark.asyncio
async def test_booking_events_follow_ledger_commits(services, webhook_calls):
    from slotwise.schemas.domain import Address

    services.registry.update_config(SHOP_ID, {
        "webhook_url": WEBHOOK_URL,
        "webhook_secret": SECRET,
        "retry_backoff_seconds": 0,
    })
    address = Address(postcode="E1 6AN", latitude=51.515, longitude=-0.07)
    old_slot = "L1:delivery:2026-03-03:1000-1100"
    new_slot = "L1:delivery:2026-03-03:1100-1200"

    booking = services.bookings.book(SHOP_ID, "order-1", old_slot, "delivery", address, was_recommended=True)
    booking = services.bookings.reschedule(SHOP_ID, "order-1", new_slot, expected_version=booking.version)
    services.bookings.cancel(SHOP_ID, "order-1", expected_version=booking.version)

    assert await services.emitter.dispatch_pending() == 3
    envelopes = [json.loads(request.content) for request in webhook_calls]
    event_types = sorted(envelope["eventType"] for envelope in envelopes)
    assert event_types == ["order.schedule_canceled", "order.schedule_updated", "order.scheduled"]

    by_type = {envelope["eventType"]: envelope["payload"] for envelope in envelopes}
    assert by_type["order.scheduled"]["data"]["meta"]["wasRecommended"] is True
    assert by_type["order.schedule_updated"]["previousSlotId"] == old_slot
    assert by_type["order.schedule_updated"]["data"]["slotId"] == new_slot
    assert by_type["order.schedule_canceled"]["data"]["meta"]["bookingVersion"] == 3


@pytest.mark.asyncio
async def test_failed_delivery_keeps_booking(registry, clock):
    from slotwise.services.container import Services
    from slotwise.schemas.domain import Address

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    services = Services(
        registry=registry,
        clock=clock,
        webhook_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    registry.update_config(SHOP_ID, {
        "webhook_url": WEBHOOK_URL,
        "webhook_secret": SECRET,
        "retry_ceiling": 2,
        "retry_backoff_seconds": 0,
    })
    slot_id = "L1:delivery:2026-03-03:1000-1100"

    services.bookings.book(SHOP_ID, "order-1", slot_id, "delivery", Address(postcode="E1 6AN"))
    await services.emitter.dispatch_pending()

    assert len(services.emitter.dead_letters()) == 1
    assert services.bookings.get(SHOP_ID, "order-1").status == "scheduled"
    assert registry.ledger(SHOP_ID).snapshot(slot_id).booked_count == 1


# ==================== Run Tests ====================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
