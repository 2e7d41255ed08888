"""Connection lifecycle: accept and tear down transport connections.

On accept a connection is registered, joined to the default room and sent
the current ``room_list``. On disconnect (clean close, transport fault or
ping timeout, all treated the same) it is evicted from every room.
"""
import logging
from typing import Set

from .connections import ConnectionPhase
from .outbox import Outbox
from .state import RelayState

logger = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Drives the per-connection state machine from accept to disconnect."""

    def __init__(self, state: RelayState) -> None:
        self.state = state

    def accept(self, connection_id: str, outbox: Outbox) -> None:
        with self.state.transaction():
            self.state.attach(connection_id, outbox)
            self.state.join(connection_id, self.state.default_room_id)
            rooms = [summary.model_dump() for summary in self.state.list_rooms()]
            self.state.send(connection_id, "room_list", rooms)
        logger.info(
            f"[Lifecycle] Client connected: {connection_id} "
            f"(joined {self.state.default_room_id}, {len(self.state.connections)} live)"
        )

    def disconnect(self, connection_id: str, reason: str = "") -> Set[str]:
        """Evict a connection from all rooms and delete it.

        Safe to call more than once; later calls return an empty set.
        """
        with self.state.transaction():
            rooms = self.state.detach(connection_id)
        logger.info(
            f"[Lifecycle] Client disconnected ({connection_id}): {reason or 'unknown'}; "
            f"left {len(rooms)} room(s)"
        )
        return rooms

    def phase(self, connection_id: str) -> ConnectionPhase:
        return self.state.connections.phase(connection_id)
