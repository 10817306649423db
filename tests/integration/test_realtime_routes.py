"""
Integration tests for the realtime WebSocket relay.
"""
from datetime import date, timedelta

import pytest
from starlette.websockets import WebSocketDisconnect

from mekacash.lib.jwt import create_access_token


def _create(client, headers):
    response = client.post(
        "/bookings",
        json={
            "provider_id": "prov-1",
            "scheduled_date": (date.today() + timedelta(days=1)).isoformat(),
            "scheduled_time": "10:00",
            "estimated_duration": 30,
            "base_price": 15.0,
            "payment_method": "wallet",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["booking"]["booking_id"]


@pytest.mark.integration
def test_rejects_invalid_token(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws?token=not-a-token"):
            pass

    assert excinfo.value.code == 1008


@pytest.mark.integration
def test_location_relayed_to_requester(client, customer_headers, provider_headers):
    with client:
        booking_id = _create(client, customer_headers)
        token = create_access_token("cust-1", "customer")

        with client.websocket_connect(f"/ws?token={token}") as websocket:
            assert websocket.receive_json() == {"event": "connected", "data": {"user_id": "cust-1"}}

            response = client.post(
                f"/bookings/{booking_id}/tracking",
                json={"latitude": 23.81, "longitude": 90.41, "heading": 90},
                headers=provider_headers,
            )
            event = websocket.receive_json()

    assert response.status_code == 200
    assert event["event"] == "runner-location-updated"
    assert event["data"]["booking_id"] == booking_id
    assert (event["data"]["latitude"], event["data"]["longitude"]) == (23.81, 90.41)


@pytest.mark.integration
def test_message_relayed_to_other_participants(client, customer_headers):
    with client:
        booking_id = _create(client, customer_headers)
        token = create_access_token("prov-1", "provider")

        with client.websocket_connect(f"/ws?token={token}") as websocket:
            websocket.receive_json()

            client.post(
                f"/bookings/{booking_id}/messages",
                json={"text": "Is parking available?"},
                headers=customer_headers,
            )
            event = websocket.receive_json()

    assert event["event"] == "new-message"
    assert event["data"]["sender"] == "cust-1"
    assert event["data"]["text"] == "Is parking available?"
