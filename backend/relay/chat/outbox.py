"""Ordered outbound event queue for a single connection.

Handlers never await a peer's socket. They ``post()`` events, which are
queued in FIFO order and written by one writer task on the connection's
own event loop. Posting is synchronous and thread-safe, so fan-out done
inside a RelayState transaction fixes the delivery order for every
recipient.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

Writer = Callable[[str, Any], Awaitable[None]]


class Outbox:
    """FIFO of ``(event, data)`` pairs drained by a single writer task.

    Args:
        connection_id: ID of the connection this outbox writes to.
        write: Coroutine function sending one event over the transport.
    """

    def __init__(self, connection_id: str, write: Writer) -> None:
        self.connection_id = connection_id
        self._write = write
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional["asyncio.Queue[Tuple[str, Any]]"] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the writer task; must run inside the connection's loop."""
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = self._loop.create_task(self._drain())

    def post(self, event: str, data: Any) -> None:
        if self._closed or self._loop is None:
            return
        try:
            # Same-loop posts also go through the callback queue so that
            # events from every thread keep a single FIFO order.
            self._loop.call_soon_threadsafe(self._queue.put_nowait, (event, data))
        except RuntimeError:
            logger.debug("Outbox loop closed for %s; dropping %s", self.connection_id, event)
            self._closed = True

    async def _drain(self) -> None:
        while True:
            event, data = await self._queue.get()
            try:
                await self._write(event, data)
            except Exception as e:
                logger.debug(f"Failed to send {event} to {self.connection_id}: {e}")
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until everything posted so far has been written."""
        if self._queue is not None and not self._closed:
            # Let callbacks scheduled by post() land in the queue first.
            await asyncio.sleep(0)
            await self._queue.join()

    def close(self) -> None:
        """Stop accepting events; pending ones are dropped."""
        self._closed = True

    async def aclose(self) -> None:
        self.close()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
