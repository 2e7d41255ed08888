"""Reconnecting relay client with an offline message queue.

RelayClient keeps a Socket.IO connection to the relay alive for a consuming
application (a UI, a bot, a bridge). Messages sent while disconnected are
queued in FIFO order and flushed, one emit each, as soon as a connection is
re-established and before any newer message goes out.

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> DISCONNECTED on transport loss (then retry)
    any -> DISCONNECTED (terminal) on close()

Reconnection retries forever with exponential backoff (doubling from
``initial_delay`` up to ``max_delay``) until ``close()`` is called. Only
one reconnect loop runs at a time. A failed emit or a queue that will not
drain disconnects the current socket before the next, backed-off, attempt.
Messages that cannot be JSON-encoded are rejected by ``send()``.

Usage:
    client = RelayClient("http://localhost:3001", on_message=print)
    await client.start()
    await client.send({"content": "hi", "author": {"email": "a@x"}})
    ...
    await client.close()
"""
import asyncio
import inspect
import json
import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

import socketio

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 5.0
DEFAULT_MAX_QUEUE = 1000


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ClientClosed(RuntimeError):
    """Raised when sending through a client that has been closed."""


class QueueFull(RuntimeError):
    """Raised when the offline queue is at capacity."""


class UnsendableMessage(ValueError):
    """Raised when a message cannot be encoded as JSON."""


def _default_client_factory() -> socketio.AsyncClient:
    # Reconnection is driven by RelayClient, not by python-socketio.
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class RelayClient:
    """Socket.IO relay client with queueing and indefinite reconnection.

    Args:
        url: Relay base URL, e.g. ``http://localhost:3001``.
        socket_path: Socket.IO path on the relay.
        transports: Transports to try, in order.
        on_message: Called (sync or async) with each inbound ``message``.
        initial_delay: First retry delay in seconds.
        max_delay: Retry delay cap in seconds.
        max_queue: Capacity of the offline queue.
        client_factory: Builds a fresh Socket.IO client for each attempt.
    """

    def __init__(
        self,
        url: str,
        socket_path: str = "api/socket",
        transports: Optional[List[str]] = None,
        on_message: Optional[Callable[[Dict[str, Any]], Any]] = None,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        max_queue: int = DEFAULT_MAX_QUEUE,
        client_factory: Callable[[], Any] = _default_client_factory,
    ) -> None:
        self.url = url
        self.socket_path = socket_path
        self.transports = transports or ["websocket", "polling"]
        self.on_message = on_message
        self.initial_delay = initial_delay
        self.max_delay = max(max_delay, initial_delay)
        self.max_queue = max_queue
        self._client_factory = client_factory

        self.state = ClientState.DISCONNECTED
        self._queue: Deque[Dict[str, Any]] = deque()
        self._sio: Optional[Any] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self.state is ClientState.CONNECTED

    @property
    def pending(self) -> List[Dict[str, Any]]:
        """Messages waiting for a connection, oldest first."""
        return list(self._queue)

    # =========================================================================
    # Public API
    # =========================================================================

    async def start(self) -> None:
        if self._closed:
            raise ClientClosed("client is closed")
        self._ensure_reconnecting()

    async def send(self, message: Dict[str, Any]) -> None:
        """Send a message now, or queue it until the next connection."""
        if self._closed:
            raise ClientClosed("client is closed")
        if not message:
            logger.warning("Attempted to send empty message")
            return

        payload = {
            **message,
            "timestamp": message.get("timestamp")
            or datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise UnsendableMessage(f"message cannot be encoded: {exc}") from exc

        # Queued messages go first; a flush in progress will pick this up.
        if self.state is ClientState.CONNECTED and not self._queue:
            try:
                await self._sio.emit("message", payload)
                return
            except Exception as exc:
                logger.warning("Error sending message, queueing it: %s", exc)
                self._enqueue(payload)
                self._mark_disconnected()
                await self._discard_client()
                self._ensure_reconnecting()
                return

        logger.info("Socket not connected, queueing message")
        self._enqueue(payload)
        self._ensure_reconnecting()

    async def close(self) -> None:
        """Stop reconnecting, cancel pending retries and disconnect."""
        self._closed = True
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._discard_client()
        self.state = ClientState.DISCONNECTED
        logger.info("Relay client closed (%d message(s) left unsent)", len(self._queue))

    # =========================================================================
    # Connection management
    # =========================================================================

    def _enqueue(self, payload: Dict[str, Any]) -> None:
        if len(self._queue) >= self.max_queue:
            raise QueueFull(f"offline queue is full ({self.max_queue} messages)")
        self._queue.append(payload)

    def _mark_disconnected(self) -> None:
        if self.state is not ClientState.DISCONNECTED:
            logger.info("Relay connection lost")
        self.state = ClientState.DISCONNECTED

    def _ensure_reconnecting(self) -> None:
        if self._closed or self.state is ClientState.CONNECTED:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _discard_client(self) -> None:
        """Disconnect and forget the current Socket.IO client, if any."""
        # Cleared first so its disconnect handler sees it as stale.
        sio, self._sio = self._sio, None
        if sio is None:
            return
        try:
            await sio.disconnect()
        except Exception as exc:
            logger.debug("Error during disconnect: %s", exc)

    def _bind(self, sio: Any) -> None:
        async def on_disconnect(*args: Any) -> None:
            if sio is not self._sio or self._closed:
                return
            logger.info("Socket.IO disconnected: %s", args[0] if args else "")
            self._mark_disconnected()
            self._ensure_reconnecting()

        async def on_message(data: Any) -> None:
            if sio is not self._sio or self.on_message is None:
                return
            result = self.on_message(data)
            if inspect.isawaitable(result):
                await result

        sio.on("disconnect", on_disconnect)
        sio.on("message", on_message)

    async def _connect_once(self) -> bool:
        await self._discard_client()
        sio = self._client_factory()
        self._bind(sio)
        self._sio = sio
        logger.info("Connecting to Socket.IO server: %s", self.url)
        try:
            await sio.connect(
                self.url,
                socketio_path=self.socket_path,
                transports=self.transports,
            )
        except Exception as exc:
            logger.warning("Socket.IO connection error: %s", exc)
            return False
        return True

    async def _flush(self) -> bool:
        """Emit queued messages in order; False if the connection dropped."""
        while self._queue:
            if self.state is not ClientState.CONNECTED:
                return False
            payload = self._queue[0]
            try:
                await self._sio.emit("message", payload)
            except (TypeError, ValueError) as exc:
                # Encoding failures repeat on every connection.
                logger.error("Dropping queued message that cannot be encoded: %s", exc)
                self._queue.popleft()
                continue
            except Exception as exc:
                logger.warning("Flushing queued message failed: %s", exc)
                self._mark_disconnected()
                return False
            self._queue.popleft()
            logger.debug("Sent queued message (%d left)", len(self._queue))
        return True

    async def _reconnect_loop(self) -> None:
        delay = self.initial_delay
        while not self._closed:
            self.state = ClientState.CONNECTING
            if await self._connect_once():
                self.state = ClientState.CONNECTED
                logger.info("Socket.IO connected (%d queued message(s))", len(self._queue))
                if await self._flush() and self.state is ClientState.CONNECTED:
                    return
                # Connected but the queue would not drain; drop this socket.
                await self._discard_client()

            self.state = ClientState.DISCONNECTED
            logger.info("Scheduling reconnection attempt in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_delay)
