"""Inbound event handling for the relay.

The Dispatcher validates events from a connection, applies them to
RelayState and posts the resulting events to the right outboxes. Every
handler runs to completion inside one state transaction; none of them
await I/O.

Event contract (inbound -> outbound):
    identify / set_user_info {name, email, avatarUrl}
        -> (nothing)
    create_room {id, name, isPublic, createdBy?}
        -> room_created {id, name, isPublic, memberCount}   (everyone, public only)
        -> room_joined {roomId, messages: []}               (sender)
    join_room roomId
        -> room_history {roomId, messages}                  (sender)
        -> room_joined {roomId}                             (sender)
    leave_room roomId
        -> room_left {roomId}                               (sender)
    message {content, author, roomId?, timestamp?}
        -> message {...original, id, timestamp, roomId, originConnectionId}
                                                            (room members)

Failures are posted to the sender only as ``error {message, detail}``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from relay.errors import (
    InternalError,
    InvalidMessage,
    InvalidRoomSpec,
    PrivateRoomForbidden,
    RelayError,
    RoomNotFound,
    UnknownEvent,
)

from .models import CreateRoomRequest, Identity, Message
from .state import RelayState

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], None]

# Fields the server always assigns on an enhanced message.
SERVER_MESSAGE_FIELDS = ("id", "timestamp", "roomId", "originConnectionId")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _room_id_from(data: Any) -> str:
    """Accept either a bare room ID or ``{"roomId": ...}``."""
    if isinstance(data, dict):
        data = data.get("roomId")
    if not isinstance(data, str) or not data.strip():
        raise RoomNotFound("Room ID is required")
    return data.strip()


class Dispatcher:
    """Routes inbound events to state mutations and outbound events."""

    def __init__(self, state: RelayState) -> None:
        self.state = state
        self._handlers: Dict[str, Handler] = {
            "identify": self.identify,
            "set_user_info": self.identify,
            "create_room": self.create_room,
            "join_room": self.join_room,
            "leave_room": self.leave_room,
            "message": self.message,
        }

    @property
    def events(self) -> tuple:
        return tuple(self._handlers)

    def dispatch(self, connection_id: str, event: Optional[str], data: Any) -> None:
        """Handle one inbound event.

        Never raises for bad input: relay errors and unexpected failures are
        reported to the originating connection and the connection stays open.
        """
        try:
            handler = self._handlers.get(event or "")
            if handler is None:
                raise UnknownEvent(f"Unknown event: {event}")
            with self.state.transaction():
                handler(connection_id, data)
        except RelayError as exc:
            logger.warning(
                f"[Dispatch] {event} from {connection_id} failed: {exc.detail} ({exc.message})"
            )
            self.state.send(connection_id, "error", exc.to_payload())
        except Exception:
            logger.exception(f"[Dispatch] Unexpected error handling {event} from {connection_id}")
            self.state.send(connection_id, "error", InternalError().to_payload())

    # =========================================================================
    # Handlers
    # =========================================================================

    def identify(self, connection_id: str, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning(f"[Dispatch] Ignoring non-object identity from {connection_id}")
            return
        try:
            identity = Identity.model_validate(data)
        except ValidationError as exc:
            logger.warning(
                f"[Dispatch] Ignoring malformed identity from {connection_id}: {exc.errors()[0]['msg']}"
            )
            return
        self.state.connections.set_identity(connection_id, identity)
        logger.info(f"[Dispatch] {connection_id} identified as {identity.key or identity.name}")

    def create_room(self, connection_id: str, data: Any) -> None:
        if not isinstance(data, dict):
            raise InvalidRoomSpec()
        try:
            spec = CreateRoomRequest.model_validate(data)
        except ValidationError as exc:
            raise InvalidRoomSpec(f"Invalid room data: {exc.errors()[0]['msg']}") from exc

        if spec.createdBy is None:
            identity = self.state.connections.identity_of(connection_id)
            if identity is not None and identity.key:
                spec.createdBy = identity.key

        room = self.state.create_room(spec)
        self.state.join(connection_id, room.id)

        if room.isPublic:
            self.state.broadcast_all("room_created", room.summary().model_dump())

        self.state.send(connection_id, "room_joined", {"roomId": room.id, "messages": []})

    def join_room(self, connection_id: str, data: Any) -> None:
        room_id = _room_id_from(data)
        room = self.state.rooms.get_room(room_id)

        if not room.isPublic:
            identity = self.state.connections.identity_of(connection_id)
            key = identity.key if identity is not None else None
            if not key or key != room.createdBy:
                raise PrivateRoomForbidden(f"Cannot join private room '{room_id}'")

        self.state.join(connection_id, room_id)
        history = [message.model_dump() for message in self.state.messages.history(room_id)]
        self.state.send(connection_id, "room_history", {"roomId": room_id, "messages": history})
        self.state.send(connection_id, "room_joined", {"roomId": room_id})
        logger.info(f"[Dispatch] {connection_id} joined room {room_id} ({len(history)} messages replayed)")

    def leave_room(self, connection_id: str, data: Any) -> None:
        room_id = _room_id_from(data)
        self.state.rooms.get_room(room_id)
        self.state.leave(connection_id, room_id)
        self.state.send(connection_id, "room_left", {"roomId": room_id})
        logger.info(f"[Dispatch] {connection_id} left room {room_id}")

    def message(self, connection_id: str, data: Any) -> None:
        if not isinstance(data, dict):
            raise InvalidMessage()

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise InvalidMessage("Invalid message format: content is required")

        # Older clients send the author as "user".
        author = data.get("author") or data.get("user")
        if not isinstance(author, dict) or not author:
            raise InvalidMessage("Invalid message format: author is required")

        room_id = data.get("roomId") or self.state.default_room_id
        if not isinstance(room_id, str) or not self.state.rooms.has_room(room_id):
            raise RoomNotFound(f"Room '{room_id}' not found")

        extra = {
            key: value for key, value in data.items()
            if key not in SERVER_MESSAGE_FIELDS and key not in ("author", "user", "content")
        }
        if data.get("timestamp"):
            extra["clientTimestamp"] = data["timestamp"]

        message = Message(
            **extra,
            id=self.state.next_message_id(),
            content=content,
            author=author,
            timestamp=utc_now_iso(),
            roomId=room_id,
            originConnectionId=connection_id,
        )
        self.state.messages.append(room_id, message)
        delivered = self.state.broadcast_room(room_id, "message", message.model_dump())
        logger.info(f"[Dispatch] Broadcast message {message.id} to {delivered} connections in {room_id}")
