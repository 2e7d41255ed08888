"""Single owner of all relay state.

RelayState owns the room registry, the message store, the connection
registry and the per-connection outboxes. Every mutation happens inside
``transaction()``, a single re-entrant lock, which keeps the two
membership indices (``Room.members`` and ``ConnectionEntry.rooms``)
consistent and serializes appends with their fan-out.

Under uvicorn everything runs on one event loop and the lock is never
contended. It matters when connections are served from different loops or
threads, as the test client does.
"""
import itertools
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Set

from .connections import ConnectionRegistry
from .models import CreateRoomRequest, Room, RoomSummary
from .outbox import Outbox
from .registry import RoomRegistry
from .store import DEFAULT_HISTORY_LIMIT, MessageStore

logger = logging.getLogger(__name__)

DEFAULT_ROOM_ID = "general"
DEFAULT_ROOM_NAME = "General"


class RelayState:
    """Rooms, history and connections behind one transaction path."""

    def __init__(
        self,
        default_room_id: str = DEFAULT_ROOM_ID,
        default_room_name: str = DEFAULT_ROOM_NAME,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.rooms = RoomRegistry()
        self.messages = MessageStore(history_limit)
        self.connections = ConnectionRegistry()
        self.default_room_id = default_room_id
        self._outboxes: Dict[str, Outbox] = {}
        self._lock = threading.RLock()
        self._message_seq = itertools.count(1)

        # The default public room always exists.
        self.create_room(CreateRoomRequest(id=default_room_id, name=default_room_name, isPublic=True))

    @contextmanager
    def transaction(self) -> Iterator["RelayState"]:
        with self._lock:
            yield self

    # =========================================================================
    # Rooms and membership
    # =========================================================================

    def create_room(self, spec: CreateRoomRequest) -> Room:
        with self._lock:
            room = self.rooms.create_room(spec)
            self.messages.register_room(room.id)
            return room

    def list_rooms(self) -> List[RoomSummary]:
        with self._lock:
            return list(self.rooms.list_rooms())

    def join(self, connection_id: str, room_id: str) -> None:
        """Add a connection to a room on both membership indices."""
        with self._lock:
            self.rooms.add_member(room_id, connection_id)
            self.connections.record_join(connection_id, room_id)

    def leave(self, connection_id: str, room_id: str) -> None:
        with self._lock:
            self.rooms.remove_member(room_id, connection_id)
            self.connections.record_leave(connection_id, room_id)

    def membership_consistent(self) -> bool:
        """Check that room membership and connection room sets mirror each other."""
        with self._lock:
            from_rooms = {
                (connection_id, room.id)
                for room in self.rooms.all_rooms()
                for connection_id in room.members
            }
            from_connections = {
                (connection_id, room_id)
                for connection_id in self.connections.connection_ids()
                for room_id in self.connections.rooms_of(connection_id)
            }
            return from_rooms == from_connections

    # =========================================================================
    # Connections
    # =========================================================================

    def attach(self, connection_id: str, outbox: Outbox) -> None:
        with self._lock:
            self.connections.register(connection_id)
            self._outboxes[connection_id] = outbox

    def detach(self, connection_id: str) -> Set[str]:
        """Remove a connection from every room and forget it.

        Returns:
            The rooms the connection was a member of.
        """
        with self._lock:
            rooms = self.connections.evict_all(connection_id)
            for room_id in rooms:
                self.rooms.remove_member(room_id, connection_id)
            outbox = self._outboxes.pop(connection_id, None)
            if outbox is not None:
                outbox.close()
            return rooms

    def outbox(self, connection_id: str) -> Optional[Outbox]:
        return self._outboxes.get(connection_id)

    # =========================================================================
    # Messages and fan-out
    # =========================================================================

    def next_message_id(self) -> str:
        """Return a unique, increasing ID of the form ``<epoch-ms>-<seq>``."""
        return f"{int(time.time() * 1000)}-{next(self._message_seq)}"

    def send(self, connection_id: str, event: str, data: Any) -> bool:
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            return False
        outbox.post(event, data)
        return True

    def broadcast_room(self, room_id: str, event: str, data: Any) -> int:
        """Post an event to every current member of a room.

        Returns:
            Number of connections the event was posted to.
        """
        with self._lock:
            delivered = 0
            for connection_id in sorted(self.rooms.members(room_id)):
                if self.send(connection_id, event, data):
                    delivered += 1
            return delivered

    def broadcast_all(self, event: str, data: Any) -> int:
        with self._lock:
            delivered = 0
            for connection_id in list(self._outboxes):
                if self.send(connection_id, event, data):
                    delivered += 1
            return delivered
