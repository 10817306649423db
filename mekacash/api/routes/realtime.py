"""
Realtime WebSocket route.

Clients connect to /ws?token=<bearer token> and join the room for the
user id in the token. The server pushes booking notifications, runner
locations and new messages; anything the client sends is ignored.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from jwt import InvalidTokenError

from mekacash.api.dependencies import get_connection_registry
from mekacash.lib.jwt import get_actor_from_token
from mekacash.lib.logging import get_logger
from mekacash.services.realtime import CONNECTED, ConnectionRegistry


logger = get_logger(__name__)
router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def booking_events(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    try:
        user_id, role = get_actor_from_token(token or "")
    except (InvalidTokenError, KeyError):
        logger.warning("Realtime connection rejected: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    registry.connect(user_id, websocket)
    logger.info("Realtime client connected", extra={"user_id": user_id, "role": role})

    try:
        # Tells the client its room is live
        await websocket.send_json({"event": CONNECTED, "data": {"user_id": user_id}})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Realtime client disconnected", extra={"user_id": user_id})
    finally:
        registry.disconnect(user_id, websocket)
