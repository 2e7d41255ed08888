"""Pydantic models for rooms, messages and identities.

These are the shapes exchanged over the relay's event protocol:

    - Identity: display metadata a client attaches to its connection
    - CreateRoomRequest: payload of ``create_room``
    - Room: registry record for a room (membership lives here too)
    - RoomSummary: entry of ``room_list`` / ``room_created``
    - Message: an enhanced chat message, immutable once stored
"""
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Identity(BaseModel):
    """User identity supplied by the client.

    The relay neither validates nor authenticates it. ``email`` is the
    unique key used for private room checks; unknown fields (e.g. ``image``
    from the auth provider) are kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = Field(default=None, description="Display name")
    email: Optional[str] = Field(default=None, description="Unique user key")
    avatarUrl: Optional[str] = Field(default=None, description="Avatar image URL")

    @property
    def key(self) -> Optional[str]:
        return self.email or None


def _identity_key(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("email") or None
    if isinstance(value, Identity):
        return value.key
    return value or None


class CreateRoomRequest(BaseModel):
    """Payload of a ``create_room`` event.

    Attributes:
        id: Caller-chosen unique room ID.
        name: Room display name.
        isPublic: Public rooms are announced to everyone and open to join.
        createdBy: Identity key (email) of the creator. An identity object
            is accepted and reduced to its email.
    """
    id: str = Field(default="", description="Unique room ID")
    name: str = Field(default="", description="Room display name")
    isPublic: bool = Field(default=False, description="Whether anyone may join")
    createdBy: Optional[str] = Field(default=None, description="Creator identity key")

    @field_validator("createdBy", mode="before")
    @classmethod
    def _reduce_identity(cls, value: Any) -> Optional[str]:
        return _identity_key(value)


class Room(BaseModel):
    """A named broadcast group.

    ``members`` holds connection IDs only; the connection registry keeps the
    mirrored room set for each connection.
    """
    id: str
    name: str
    isPublic: bool = True
    createdBy: Optional[str] = None
    members: Set[str] = Field(default_factory=set)

    def summary(self) -> "RoomSummary":
        return RoomSummary(
            id=self.id,
            name=self.name,
            isPublic=self.isPublic,
            memberCount=len(self.members),
        )


class RoomSummary(BaseModel):
    id: str
    name: str
    isPublic: bool
    memberCount: int = 0


class Message(BaseModel):
    """A chat message as stored in history and broadcast to a room.

    Client-supplied extra fields are carried through untouched, but the
    server-assigned ``id``, ``timestamp``, ``roomId`` and
    ``originConnectionId`` always win over client values.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str = Field(..., description="Server-assigned message ID")
    content: str = Field(..., description="Message text")
    author: Dict[str, Any] = Field(..., description="Author identity snapshot")
    timestamp: str = Field(..., description="Server ISO-8601 timestamp")
    roomId: str = Field(..., description="Room this message belongs to")
    originConnectionId: str = Field(..., description="Connection that sent it")
