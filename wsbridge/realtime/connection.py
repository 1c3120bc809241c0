"""
WebSocket Connection

One Connection is one connection attempt. It is created by the supervisor,
reports its lifecycle back as events tagged with its generation, and is
replaced (never reused) on reconnect.

Guarantees:
- ConnectionOpened at most once, before any FrameReceived
- exactly one ConnectionLost per Connection that did not get ``close()``d,
  whether the cause was a close frame, a transport error, a failed
  handshake or ``terminate()``
- lines passed to ``send()`` go out in call order through one writer task;
  lines still buffered when the connection dies are handed back by
  ``take_unsent()``
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum, auto
from typing import Callable, Deque, List, Optional, Protocol, Set

import websockets
from websockets.exceptions import ConnectionClosed

from wsbridge.core.config import BridgeConfig
from wsbridge.realtime.events import (
    BridgeEvent,
    ConnectionLost,
    ConnectionOpened,
    FrameReceived,
    PongReceived,
)
from wsbridge.realtime.frame_codec import encode_line
from wsbridge.realtime.scheduler import Scheduler

logger = logging.getLogger(__name__)

Dispatch = Callable[[BridgeEvent], None]

# Close code reported when the connection is dropped without a close frame.
ABNORMAL_CLOSURE = 1006


class ConnectionState(Enum):
    """Connection lifecycle states."""

    CONNECTING = auto()
    OPEN = auto()
    CLOSING = auto()
    CLOSED = auto()


class Connection(Protocol):
    """Transport handle owned by the ConnectionSupervisor."""

    generation: int
    created_at: float
    state: ConnectionState

    def start(self) -> None: ...

    def send(self, line: str) -> None: ...

    def ping(self) -> None: ...

    def terminate(self) -> None: ...

    def close(self) -> None: ...

    def take_unsent(self) -> List[str]: ...

    async def wait_closed(self, timeout: float) -> None: ...


ConnectionFactory = Callable[[int, Dispatch], Connection]


class WebSocketConnection:
    """
    Connection backed by the ``websockets`` asyncio client.

    Per-message compression is disabled for interoperability and the
    library's own keepalive is off: the HeartbeatMonitor owns liveness.
    """

    def __init__(
        self,
        url: str,
        generation: int,
        dispatch: Dispatch,
        *,
        open_timeout: Optional[float] = 10.0,
        created_at: float = 0.0,
    ):
        self.url = url
        self.generation = generation
        self.created_at = created_at
        self.state = ConnectionState.CONNECTING

        self._dispatch = dispatch
        self._open_timeout = open_timeout
        self._ws = None
        self._outbox: Deque[str] = deque()
        self._outbox_ready = asyncio.Event()
        self._lost_reported = False
        self._closing = False

        self._run_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None
        self._ping_tasks: Set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"WebSocketConnection(gen={self.generation}, state={self.state.name})"

    # ------------------------------------------------------------------
    # Supervisor-facing API (synchronous, called from the event loop)
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin the handshake in the background."""
        self._run_task = asyncio.get_running_loop().create_task(self._run())

    def send(self, line: str) -> None:
        """Buffer a line for the writer task."""
        self._outbox.append(encode_line(line))
        self._outbox_ready.set()

    def ping(self) -> None:
        """Send a native WebSocket ping; a pong yields PongReceived."""
        if self.state is not ConnectionState.OPEN:
            return
        task = asyncio.get_running_loop().create_task(self._ping())
        self._ping_tasks.add(task)
        task.add_done_callback(self._ping_tasks.discard)

    def terminate(self) -> None:
        """
        Force the connection down without a closing handshake.

        ConnectionLost is reported on the next loop iteration, exactly as if
        the transport had dropped.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        logger.debug("[Connection:%d] Terminating", self.generation)
        self.state = ConnectionState.CLOSING
        self._abort_transport()
        self._cancel_tasks()
        asyncio.get_running_loop().call_soon(
            self._report_lost, "WebSocket terminated", ABNORMAL_CLOSURE
        )

    def close(self) -> None:
        """
        Best-effort graceful close. No further events are reported.

        Never raises; errors from the transport are logged at debug level.
        """
        if self._closing:
            return
        self._closing = True
        self._lost_reported = True
        self.state = ConnectionState.CLOSING

        if self._writer_task is not None:
            self._writer_task.cancel()

        if self._ws is None:
            if self._run_task is not None:
                self._run_task.cancel()
            self.state = ConnectionState.CLOSED
            return

        self._close_task = asyncio.get_running_loop().create_task(self._close())

    def take_unsent(self) -> List[str]:
        """Remove and return lines that never reached the wire."""
        unsent = list(self._outbox)
        self._outbox.clear()
        return unsent

    async def wait_closed(self, timeout: float) -> None:
        """Wait up to ``timeout`` seconds for background work to finish."""
        tasks = [
            t
            for t in (self._close_task, self._run_task, self._writer_task)
            if t is not None and not t.done()
        ]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(
                "[Connection:%d] %d task(s) still running after %.1fs, cancelled",
                self.generation,
                len(pending),
                timeout,
            )

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            self._ws = await websockets.connect(
                self.url,
                compression=None,
                ping_interval=None,
                ping_timeout=None,
                open_timeout=self._open_timeout,
                max_size=None,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # OSError, InvalidURI, InvalidHandshake, TimeoutError, ...
            self.state = ConnectionState.CLOSED
            self._report_lost(f"WebSocket error: {str(e) or type(e).__name__}")
            return

        if self._closing:
            await self._close()
            return

        self.state = ConnectionState.OPEN
        self._writer_task = asyncio.get_running_loop().create_task(self._write_loop())
        self._dispatch(ConnectionOpened(self.generation))

        try:
            async for message in self._ws:
                self._dispatch(FrameReceived(self.generation, message))
        except ConnectionClosed:
            pass
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("[Connection:%d] Receive error: %s", self.generation, e)

        self.state = ConnectionState.CLOSED
        if self._writer_task is not None:
            self._writer_task.cancel()
        code = getattr(self._ws, "close_code", None)
        reason = getattr(self._ws, "close_reason", None)
        why = f" reason={reason}" if reason else ""
        self._report_lost(f"WebSocket closed (code={code}{why})", code)

    async def _write_loop(self) -> None:
        while True:
            while not self._outbox:
                self._outbox_ready.clear()
                await self._outbox_ready.wait()
            line = self._outbox[0]
            try:
                await self._ws.send(line)
            except ConnectionClosed:
                # Line stays in the outbox for take_unsent(); the reader
                # reports the close.
                return
            if self._outbox and self._outbox[0] is line:
                self._outbox.popleft()

    async def _ping(self) -> None:
        try:
            pong_waiter = await self._ws.ping()
            await pong_waiter
        except ConnectionClosed:
            return
        if self.state is ConnectionState.OPEN:
            self._dispatch(PongReceived(self.generation))

    async def _close(self) -> None:
        try:
            await self._ws.close()
        except Exception as e:
            logger.debug("[Connection:%d] Error closing: %s", self.generation, e)
        finally:
            self.state = ConnectionState.CLOSED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _report_lost(self, reason: str, code: Optional[int] = None) -> None:
        if self._lost_reported:
            return
        self._lost_reported = True
        self.state = ConnectionState.CLOSED
        self._dispatch(ConnectionLost(self.generation, reason, code))

    def _abort_transport(self) -> None:
        transport = getattr(self._ws, "transport", None)
        if transport is None:
            return
        try:
            transport.abort()
        except Exception as e:
            logger.debug("[Connection:%d] Abort failed: %s", self.generation, e)

    def _cancel_tasks(self) -> None:
        for task in (self._run_task, self._writer_task, *self._ping_tasks):
            if task is not None and task is not asyncio.current_task():
                task.cancel()


def websocket_connection_factory(
    config: BridgeConfig, scheduler: Scheduler
) -> ConnectionFactory:
    """Build the production ConnectionFactory for ``config.url``."""

    def factory(generation: int, dispatch: Dispatch) -> WebSocketConnection:
        return WebSocketConnection(
            config.url,
            generation,
            dispatch,
            open_timeout=config.open_timeout_ms / 1000,
            created_at=scheduler.now(),
        )

    return factory
