"""Connection-local relay errors.

Every error raised while handling an inbound event is reported back to the
originating connection only, as an ``error`` event carrying
``{message, detail}``. None of them close the connection.

Attributes on each class:
    detail: Stable machine-readable code sent to clients.
    default_message: Human-readable text used when no reason is given.
"""
from typing import Dict


class RelayError(Exception):
    """Base class for recoverable, connection-local relay errors."""

    detail = "relay_error"
    default_message = "Request failed"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, str]:
        """Build the ``error`` event payload for this failure."""
        return {"message": self.message, "detail": self.detail}


class InvalidRoomSpec(RelayError):
    detail = "invalid_room_spec"
    default_message = "Invalid room data"


class RoomAlreadyExists(RelayError):
    detail = "room_already_exists"
    default_message = "Room already exists"


class RoomNotFound(RelayError):
    detail = "room_not_found"
    default_message = "Room not found"


class PrivateRoomForbidden(RelayError):
    detail = "private_room_forbidden"
    default_message = "Cannot join private room"


class InvalidMessage(RelayError):
    detail = "invalid_message"
    default_message = "Invalid message format"


class UnknownEvent(RelayError):
    detail = "unknown_event"
    default_message = "Unknown event"


class InternalError(RelayError):
    """Reported when a handler fails unexpectedly."""

    detail = "internal_error"
    default_message = "Internal error"
