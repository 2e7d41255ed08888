"""Process-wide relay hub shared by every transport."""
from typing import Optional

from relay.config import RelayConfig, get_config

from .dispatcher import Dispatcher
from .lifecycle import ConnectionLifecycle
from .state import RelayState


class RelayHub:
    """Bundles the relay state with its dispatcher and lifecycle manager."""

    def __init__(self, state: Optional[RelayState] = None) -> None:
        self.state = state or RelayState()
        self.dispatcher = Dispatcher(self.state)
        self.lifecycle = ConnectionLifecycle(self.state)

    @classmethod
    def from_config(cls, config: RelayConfig) -> "RelayHub":
        return cls(
            RelayState(
                default_room_id=config.rooms.default_room_id,
                default_room_name=config.rooms.default_room_name,
                history_limit=config.rooms.history_limit,
            )
        )


_hub: Optional[RelayHub] = None


def get_hub() -> RelayHub:
    """Get the global relay hub, building it from config on first use."""
    global _hub
    if _hub is None:
        _hub = RelayHub.from_config(get_config())
    return _hub


def set_hub(hub: Optional[RelayHub]) -> None:
    """Set (or with None, reset) the global relay hub."""
    global _hub
    _hub = hub
