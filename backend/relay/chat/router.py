"""Relay router providing HTTP and raw WebSocket endpoints.

This module provides:
    - GET /rooms: Current room list with member counts
    - GET /rooms/{room_id}/history: Most recent messages of a room
    - WebSocket /ws/relay: Relay protocol over plain WebSocket frames

Socket.IO clients use the same relay through the ASGI app built in
``relay.main``; this endpoint is for clients without a Socket.IO library.

Frame format (both directions):
    {"event": "<name>", "data": <payload>}
"""
import json
import logging
import uuid
from typing import Any, List

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect

from relay.errors import InvalidMessage, RoomNotFound

from .hub import get_hub
from .models import RoomSummary
from .outbox import Outbox

logger = logging.getLogger(__name__)

router = APIRouter()

# Default page size for message history
DEFAULT_PAGE_SIZE = 50

# Maximum page size to prevent abuse
MAX_PAGE_SIZE = 100


@router.get("/rooms", response_model=List[RoomSummary], tags=["rooms"])
async def list_rooms() -> List[RoomSummary]:
    """List every room in creation order.

    Returns:
        The same entries a connection receives as ``room_list``.
    """
    return get_hub().state.list_rooms()


@router.get("/rooms/{room_id}/history", tags=["rooms"])
async def get_room_history(
    room_id: str,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Number of messages to return"),
) -> dict:
    """Get the most recent messages of a room, oldest first.

    Args:
        room_id: The room ID.
        limit: Maximum number of messages to return (1-100, default 50).

    Returns:
        JSON with roomId and messages array.
    """
    hub = get_hub()
    try:
        with hub.state.transaction():
            messages = hub.state.messages.recent(room_id, limit)
    except RoomNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc

    return {"roomId": room_id, "messages": [message.model_dump() for message in messages]}


def _parse_frame(raw: str) -> tuple:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidMessage("Malformed frame: not JSON") from exc
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise InvalidMessage("Malformed frame: expected {event, data}")
    return frame["event"], frame.get("data")


@router.websocket("/ws/relay")
async def relay_websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint speaking the relay event protocol.

    Protocol Flow:
        1. Client connects -> joined to the default room
           -> Server sends: {event: "room_list", data: [...]}
        2. Client sends {event, data} frames (identify, create_room,
           join_room, leave_room, message)
           -> Server replies / broadcasts per the dispatcher contract
        3. On disconnect -> connection is evicted from every room

    Args:
        websocket: The WebSocket connection.
    """
    hub = get_hub()
    await websocket.accept()
    connection_id = str(uuid.uuid4())

    async def write(event: str, data: Any) -> None:
        await websocket.send_json({"event": event, "data": data})

    outbox = Outbox(connection_id, write)
    outbox.start()
    hub.lifecycle.accept(connection_id, outbox)

    reason = "client disconnect"
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                event, data = _parse_frame(raw)
            except InvalidMessage as exc:
                logger.warning(f"[WS] Bad frame from {connection_id}: {exc.message}")
                hub.state.send(connection_id, "error", exc.to_payload())
                continue
            logger.debug("[WS] %s received: event=%s", connection_id, event)
            hub.dispatcher.dispatch(connection_id, event, data)
    except WebSocketDisconnect as exc:
        reason = f"client disconnect (code {exc.code})"
    except Exception:
        logger.exception(f"[WS] Transport error on {connection_id}")
        reason = "transport error"
    finally:
        hub.lifecycle.disconnect(connection_id, reason)
        await outbox.aclose()
