"""Room registry: the set of rooms, their metadata and membership.

Pure in-memory state with no I/O. Membership here is one half of the
mirrored index; the other half lives in ConnectionRegistry and both are
updated together by RelayState.
"""
import logging
from typing import Dict, FrozenSet, Iterator, List

from relay.errors import InvalidRoomSpec, RoomAlreadyExists, RoomNotFound

from .models import CreateRoomRequest, Room, RoomSummary

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Owns every room, keyed by ID in insertion order."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    def create_room(self, spec: CreateRoomRequest) -> Room:
        """Register a new, empty room.

        Raises:
            InvalidRoomSpec: ``id`` or ``name`` is empty.
            RoomAlreadyExists: a room with the same ID is already registered.
        """
        room_id = spec.id.strip()
        name = spec.name.strip()
        if not room_id or not name:
            raise InvalidRoomSpec("Room id and name are required")
        if room_id in self._rooms:
            raise RoomAlreadyExists(f"Room '{room_id}' already exists")

        room = Room(
            id=room_id,
            name=name,
            isPublic=spec.isPublic,
            createdBy=spec.createdBy,
        )
        self._rooms[room_id] = room
        logger.info(
            "[Rooms] Created %s room %s (%s)",
            "public" if room.isPublic else "private", room_id, name,
        )
        return room

    def get_room(self, room_id: str) -> Room:
        room = self._rooms.get(room_id) if room_id else None
        if room is None:
            raise RoomNotFound(f"Room '{room_id}' not found")
        return room

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def list_rooms(self) -> Iterator[RoomSummary]:
        """Yield a summary of each room in creation order.

        Each call starts from a fresh snapshot of the current rooms, so the
        sequence can be restarted and is safe to consume while rooms change.
        """
        for room in list(self._rooms.values()):
            yield room.summary()

    def add_member(self, room_id: str, connection_id: str) -> None:
        self.get_room(room_id).members.add(connection_id)

    def remove_member(self, room_id: str, connection_id: str) -> None:
        # No-op for unknown rooms or members; disconnect cleanup relies on it.
        room = self._rooms.get(room_id)
        if room is not None:
            room.members.discard(connection_id)

    def all_rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def members(self, room_id: str) -> FrozenSet[str]:
        return frozenset(self.get_room(room_id).members)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms
