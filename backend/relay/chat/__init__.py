"""Rooms, message history and event dispatch for the relay.

Components:
    - RoomRegistry: rooms and their membership
    - MessageStore: per-room history buffers
    - ConnectionRegistry: live connections, identity and room sets
    - RelayState: single owner of the three, with one transaction path
    - Dispatcher: validates inbound events and fans out results
    - ConnectionLifecycle: accept / disconnect handling
"""

from .connections import ConnectionEntry, ConnectionPhase, ConnectionRegistry
from .dispatcher import Dispatcher
from .hub import RelayHub, get_hub, set_hub
from .lifecycle import ConnectionLifecycle
from .models import CreateRoomRequest, Identity, Message, Room, RoomSummary
from .outbox import Outbox
from .registry import RoomRegistry
from .state import RelayState
from .store import MessageStore

__all__ = [
    "ConnectionEntry",
    "ConnectionLifecycle",
    "ConnectionPhase",
    "ConnectionRegistry",
    "CreateRoomRequest",
    "Dispatcher",
    "Identity",
    "Message",
    "MessageStore",
    "Outbox",
    "RelayHub",
    "RelayState",
    "Room",
    "RoomRegistry",
    "RoomSummary",
    "get_hub",
    "set_hub",
]
