"""Socket.IO transport for the relay.

Serves the relay protocol with python-socketio so browsers get WebSocket
with HTTP long-polling as a fallback. Each Socket.IO session ID is used as
the relay connection ID.

Current client convention:
- Socket.IO path: /api/socket
- Transports: websocket, polling
- Events: identify (alias set_user_info), create_room, join_room,
  leave_room, message
"""
from __future__ import annotations

import logging
from typing import Any, Callable

import socketio

from relay.config import RelayConfig

from .hub import RelayHub, get_hub
from .outbox import Outbox

logger = logging.getLogger(__name__)


def create_socketio_server(config: RelayConfig) -> socketio.AsyncServer:
    server = config.server
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=server.cors_origins,
        cors_credentials=True,
        transports=server.transports,
        ping_interval=server.ping_interval,
        ping_timeout=server.ping_timeout,
        max_http_buffer_size=server.max_http_buffer_size,
        logger=False,
        engineio_logger=False,
    )
    register_handlers(sio)
    return sio


def register_handlers(
    sio: socketio.AsyncServer,
    hub_getter: Callable[[], RelayHub] = get_hub,
) -> None:
    """Attach the relay's lifecycle and event handlers to a server."""

    async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
        async def write(event: str, data: Any) -> None:
            await sio.emit(event, data, to=sid)

        outbox = Outbox(sid, write)
        outbox.start()
        hub_getter().lifecycle.accept(sid, outbox)

    async def disconnect(sid: str, reason: Any = None):
        outbox = hub_getter().state.outbox(sid)
        hub_getter().lifecycle.disconnect(sid, str(reason or "transport close"))
        if outbox is not None:
            await outbox.aclose()

    sio.on("connect", connect)
    sio.on("disconnect", disconnect)

    for event in hub_getter().dispatcher.events:
        sio.on(event, _event_handler(event, hub_getter))


def _event_handler(event: str, hub_getter: Callable[[], RelayHub]):
    async def handler(sid: str, data: Any = None):
        hub_getter().dispatcher.dispatch(sid, event, data)

    handler.__name__ = f"on_{event}"
    return handler
