"""
Unit tests for the realtime connection registry.
"""
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from mekacash.models.booking_document import PaymentMethod
from mekacash.services import booking_lifecycle, tracking
from mekacash.services.realtime import (
    NEW_MESSAGE,
    RUNNER_LOCATION_UPDATED,
    ConnectionRegistry,
    location_event,
    message_event,
)


def _socket(fails=False):
    websocket = MagicMock()
    websocket.send_json = AsyncMock(side_effect=RuntimeError("closed") if fails else None)
    return websocket


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_reaches_every_connection_of_user(registry):
    phone, laptop, other = _socket(), _socket(), _socket()
    registry.connect("cust-1", phone)
    registry.connect("cust-1", laptop)
    registry.connect("prov-1", other)

    delivered = await registry.send_to_user("cust-1", NEW_MESSAGE, {"text": "hi"})

    assert delivered == 2
    phone.send_json.assert_awaited_once_with({"event": NEW_MESSAGE, "data": {"text": "hi"}})
    laptop.send_json.assert_awaited_once()
    other.send_json.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_without_connections(registry):
    assert await registry.send_to_user("nobody", NEW_MESSAGE, {}) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_connection_is_dropped(registry):
    broken, healthy = _socket(fails=True), _socket()
    registry.connect("cust-1", broken)
    registry.connect("cust-1", healthy)

    delivered = await registry.send_to_user("cust-1", NEW_MESSAGE, {})

    assert delivered == 1
    assert registry.connection_count("cust-1") == 1


@pytest.mark.unit
def test_disconnect_empties_room(registry):
    websocket = _socket()
    registry.connect("runner-3", websocket)

    registry.disconnect("runner-3", websocket)
    registry.disconnect("runner-3", websocket)

    assert registry.connection_count("runner-3") == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_broadcast(registry):
    customer, provider = _socket(), _socket()
    registry.connect("cust-1", customer)
    registry.connect("prov-1", provider)

    delivered = await registry.broadcast(["cust-1", "prov-1", "runner-9"], NEW_MESSAGE, {})

    assert delivered == 2


@pytest.mark.unit
def test_event_payloads():
    booking = booking_lifecycle.create_booking(
        requester="cust-1",
        provider="prov-1",
        runner="runner-3",
        scheduled_date=date(2030, 5, 1),
        scheduled_time="08:00",
        estimated_duration=30,
        base_price=12.0,
        payment_method=PaymentMethod.WALLET,
    )
    entry = tracking.record_location(booking, 23.8, 90.4, speed=12.5)
    booking_lifecycle.add_message(booking, "runner-3", "Outside now")

    location = location_event(booking, entry)
    message = message_event(booking, booking.messages[-1])

    assert location["runner"] == "runner-3"
    assert (location["latitude"], location["longitude"]) == (23.8, 90.4)
    assert location["speed"] == 12.5
    assert message == {
        "booking_id": booking.booking_id,
        "sender": "runner-3",
        "text": "Outside now",
        "timestamp": booking.messages[-1].timestamp.isoformat(),
    }
    assert RUNNER_LOCATION_UPDATED == "runner-location-updated"
