"""Per-room message history.

Each room gets a ring buffer holding at most ``history_limit`` messages
(0 means unbounded). When the buffer is full the oldest message is evicted,
so ``history()`` always returns the most recent messages in append order.
"""
from collections import deque
from typing import Deque, Dict, List

from relay.errors import RoomNotFound

from .models import Message

DEFAULT_HISTORY_LIMIT = 1000


class MessageStore:
    """Append-only message history buffers, one per room."""

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if history_limit < 0:
            raise ValueError("history_limit must be >= 0")
        self.history_limit = history_limit
        self._history: Dict[str, Deque[Message]] = {}

    def register_room(self, room_id: str) -> None:
        """Create an empty buffer for a room (no-op if it already has one)."""
        if room_id not in self._history:
            self._history[room_id] = deque(maxlen=self.history_limit or None)

    def _buffer(self, room_id: str) -> Deque[Message]:
        buffer = self._history.get(room_id)
        if buffer is None:
            raise RoomNotFound(f"Room '{room_id}' not found")
        return buffer

    def append(self, room_id: str, message: Message) -> Message:
        self._buffer(room_id).append(message)
        return message

    def history(self, room_id: str) -> List[Message]:
        return list(self._buffer(room_id))

    def recent(self, room_id: str, limit: int) -> List[Message]:
        """Return up to ``limit`` of the newest messages, oldest first."""
        if limit <= 0:
            return []
        return self.history(room_id)[-limit:]

    def count(self, room_id: str) -> int:
        return len(self._buffer(room_id))
