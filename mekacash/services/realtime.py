"""
Live booking events for connected participants.

Every user id has a room holding that user's open WebSocket connections.
Events are sent as {"event": ..., "data": ...} JSON objects. A user with
no open connection misses the live event; the stored booking stays the
source of truth.
"""
from collections import defaultdict
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket

from mekacash.lib.logging import get_logger
from mekacash.models.booking_document import Booking, Message, RouteEntry


logger = get_logger(__name__)

CONNECTED = "connected"
BOOKING_NOTIFICATION = "booking-notification"
RUNNER_LOCATION_UPDATED = "runner-location-updated"
NEW_MESSAGE = "new-message"


class ConnectionRegistry:
    """Open WebSocket connections grouped by user id."""

    def __init__(self):
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)

    def connect(self, user_id: str, websocket: WebSocket) -> None:
        self._rooms[user_id].add(websocket)

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        room = self._rooms.get(user_id)
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self._rooms[user_id]

    def connection_count(self, user_id: str) -> int:
        return len(self._rooms.get(user_id, ()))

    async def send_to_user(self, user_id: str, event: str, data: Dict[str, Any]) -> int:
        """
        Send one event to every connection of a user.

        Connections that fail are dropped from the room.

        Returns:
            Number of connections the event reached
        """
        delivered = 0
        for websocket in list(self._rooms.get(user_id, ())):
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Dropping realtime connection: {e}",
                    extra={"user_id": user_id, "event": event},
                )
                self.disconnect(user_id, websocket)
        return delivered

    async def broadcast(self, user_ids: Iterable[str], event: str, data: Dict[str, Any]) -> int:
        delivered = 0
        for user_id in user_ids:
            delivered += await self.send_to_user(user_id, event, data)
        return delivered


def location_event(booking: Booking, entry: RouteEntry) -> Dict[str, Any]:
    return {
        "booking_id": booking.booking_id,
        "runner": booking.runner,
        "latitude": entry.coordinates.latitude,
        "longitude": entry.coordinates.longitude,
        "speed": entry.speed,
        "heading": entry.heading,
        "timestamp": entry.timestamp.isoformat(),
    }


def message_event(booking: Booking, message: Message) -> Dict[str, Any]:
    return {
        "booking_id": booking.booking_id,
        "sender": message.sender,
        "text": message.text,
        "timestamp": message.timestamp.isoformat(),
    }


_registry: Optional[ConnectionRegistry] = None


def get_connection_registry() -> ConnectionRegistry:
    """Process-wide registry shared by the WebSocket route and the in-app channel."""
    global _registry
    if _registry is None:
        _registry = ConnectionRegistry()
    return _registry
