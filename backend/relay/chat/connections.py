"""Connection registry: live connections, their identity and room set.

The ``rooms`` set of each entry mirrors ``Room.members`` in the room
registry. Callers must only touch it through RelayState so that both sides
change in the same transaction.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .models import Identity


class ConnectionPhase(str, Enum):
    """Per-connection state.

    Attributes:
        CONNECTED: Accepted, no identity and no rooms.
        IDENTIFIED: Identity attached, no rooms.
        JOINED: Member of at least one room.
        DISCONNECTED: Terminal; the entry no longer exists.
    """
    CONNECTED = "connected"
    IDENTIFIED = "identified"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionEntry:
    connection_id: str
    identity: Optional[Identity] = None
    rooms: Set[str] = field(default_factory=set)

    @property
    def phase(self) -> ConnectionPhase:
        if self.rooms:
            return ConnectionPhase.JOINED
        if self.identity is not None:
            return ConnectionPhase.IDENTIFIED
        return ConnectionPhase.CONNECTED


class ConnectionRegistry:
    """Owns one ConnectionEntry per live transport connection."""

    def __init__(self) -> None:
        self._entries: Dict[str, ConnectionEntry] = {}

    def register(self, connection_id: str) -> ConnectionEntry:
        if connection_id in self._entries:
            raise ValueError(f"connection {connection_id} is already registered")
        entry = ConnectionEntry(connection_id=connection_id)
        self._entries[connection_id] = entry
        return entry

    def get(self, connection_id: str) -> Optional[ConnectionEntry]:
        return self._entries.get(connection_id)

    def _require(self, connection_id: str) -> ConnectionEntry:
        entry = self._entries.get(connection_id)
        if entry is None:
            raise KeyError(f"unknown connection {connection_id}")
        return entry

    def set_identity(self, connection_id: str, identity: Identity) -> None:
        # Later calls overwrite.
        self._require(connection_id).identity = identity

    def identity_of(self, connection_id: str) -> Optional[Identity]:
        entry = self._entries.get(connection_id)
        return entry.identity if entry else None

    def record_join(self, connection_id: str, room_id: str) -> None:
        self._require(connection_id).rooms.add(room_id)

    def record_leave(self, connection_id: str, room_id: str) -> None:
        entry = self._entries.get(connection_id)
        if entry is not None:
            entry.rooms.discard(room_id)

    def rooms_of(self, connection_id: str) -> Set[str]:
        entry = self._entries.get(connection_id)
        return set(entry.rooms) if entry else set()

    def evict_all(self, connection_id: str) -> Set[str]:
        """Delete the entry and return the rooms it belonged to."""
        entry = self._entries.pop(connection_id, None)
        return set(entry.rooms) if entry else set()

    def phase(self, connection_id: str) -> ConnectionPhase:
        entry = self._entries.get(connection_id)
        return entry.phase if entry else ConnectionPhase.DISCONNECTED

    def connection_ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
