"""
Connection Supervisor

Owns the current Connection, the reconnection state machine and the retry
schedules.

    INITIAL_CONNECTING --open--> OPEN --lost--> RECONNECTING --open--> OPEN
            |                                        |
            +--deadline / timeout--> CLOSED_EXIT <---+--attempts exhausted

Before the first open, a lost attempt is retried after a short linear delay
until the connect deadline passes. After the bridge has been open once,
every loss goes through exponential backoff with an attempt limit. Local
shutdown (``closed``) and fatal exit (``exiting``) suppress all retries.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from wsbridge.core.exceptions import ConnectTimeoutError, ReconnectExhaustedError
from wsbridge.realtime.backoff import InitialRetrySchedule, ReconnectBackoff
from wsbridge.realtime.connection import Connection, ConnectionFactory, ConnectionState
from wsbridge.realtime.events import (
    ConnectAttemptDue,
    ConnectDeadlineExpired,
    ConnectionLost,
    ConnectionOpened,
    HeartbeatTimedOut,
    PongReceived,
)
from wsbridge.realtime.heartbeat import HeartbeatMonitor
from wsbridge.realtime.scheduler import TimerHandle

if TYPE_CHECKING:
    from wsbridge.realtime.session import BridgeSession

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    """Bridge connection states."""

    INITIAL_CONNECTING = "initial_connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED_EXIT = "closed_exit"


class ConnectionSupervisor:
    """
    Reconnection state machine.

    Transport events reach the supervisor through the session's dispatch;
    events carrying an older generation than the current Connection are
    ignored.
    """

    def __init__(
        self,
        session: "BridgeSession",
        connection_factory: ConnectionFactory,
    ):
        self.session = session
        config = session.config
        self._scheduler = session.scheduler
        self._connection_factory = connection_factory

        self.state = SupervisorState.INITIAL_CONNECTING
        self.backoff = ReconnectBackoff(
            base_ms=config.reconnect_base_ms,
            max_ms=config.reconnect_max_ms,
            max_attempts=config.max_reconnect_attempts,
        )
        self.initial_retry = InitialRetrySchedule(
            step_ms=config.initial_retry_step_ms,
            max_ms=config.initial_retry_max_ms,
        )
        self.heartbeat = HeartbeatMonitor(
            self._scheduler,
            interval=config.ping_interval_ms / 1000,
            timeout=config.pong_timeout_ms / 1000,
            send_probe=self._send_probe,
            on_timeout=self._on_probe_unanswered,
        )

        self._connection: Optional[Connection] = None
        self._generation = 0
        self._initial_attempts = 0
        self._retry_timer: Optional[TimerHandle] = None
        self._deadline_timer: Optional[TimerHandle] = None
        self._last_reason = ""

        session.register(ConnectionOpened, self._on_opened)
        session.register(ConnectionLost, self._on_lost)
        session.register(PongReceived, self._on_pong)
        session.register(HeartbeatTimedOut, self._on_heartbeat_timeout)
        session.register(ConnectAttemptDue, self._on_attempt_due)
        session.register(ConnectDeadlineExpired, self._on_deadline)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def connection(self) -> Optional[Connection]:
        return self._connection

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_open(self) -> bool:
        return (
            self.state is SupervisorState.OPEN
            and self._connection is not None
            and self._connection.state is ConnectionState.OPEN
        )

    def is_current(self, generation: int) -> bool:
        """True if events from ``generation`` should still be acted on."""
        return (
            generation == self._generation
            and not self.session.closed
            and not self.session.exiting
        )

    def start(self) -> None:
        """Arm the connect deadline and make the first attempt."""
        timeout = self.session.config.connect_timeout_ms / 1000
        self._deadline_timer = self._scheduler.call_later(
            timeout, self.session.dispatch, ConnectDeadlineExpired()
        )
        self._connect()

    def send_line(self, line: str) -> None:
        """Send now if OPEN, otherwise queue for the next flush."""
        if self.is_open:
            self._connection.send(line)
            return
        self.session.queue.enqueue(line)

    def flush(self) -> int:
        """Send queued lines in order. No-op unless OPEN."""
        if not self.is_open:
            return 0
        sent = self.session.queue.flush(self._connection.send)
        if sent:
            logger.info("[Supervisor] Flushed %d queued line(s)", sent)
        return sent

    def stop(self) -> None:
        """
        Enter CLOSED_EXIT: cancel every timer and close the live connection.

        Best effort; transport errors are logged and ignored.
        """
        self.state = SupervisorState.CLOSED_EXIT
        self.heartbeat.stop()
        self._cancel_timer("_retry_timer")
        self._cancel_timer("_deadline_timer")
        if self._connection is None:
            return
        try:
            self._connection.close()
        except Exception as e:
            logger.debug("[Supervisor] Ignoring close error: %s", e)

    async def wait_closed(self, timeout: float) -> None:
        """Give the last connection up to ``timeout`` seconds to close."""
        if self._connection is None:
            return
        try:
            await self._connection.wait_closed(timeout)
        except Exception as e:
            logger.debug("[Supervisor] Ignoring error while closing: %s", e)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _connect(self) -> None:
        if self.session.closed or self.session.exiting:
            return

        if not self.session.opened:
            self._initial_attempts += 1
            if self.session.elapsed_ms > self.session.config.connect_timeout_ms:
                self._fail_connect_timeout()
                return

        self._generation += 1
        logger.debug(
            "[Supervisor] Connecting to %s (generation %d)",
            self.session.config.url,
            self._generation,
        )
        self._connection = self._connection_factory(
            self._generation, self.session.dispatch
        )
        self._connection.start()

    def _on_attempt_due(self, event: ConnectAttemptDue) -> None:
        self._retry_timer = None
        self._connect()

    def _on_opened(self, event: ConnectionOpened) -> None:
        if not self.is_current(event.generation):
            logger.debug("[Supervisor] Ignoring open from stale generation %d", event.generation)
            return

        if not self.session.opened:
            self.session.opened = True
            self._cancel_timer("_deadline_timer")
            logger.info(
                "[Supervisor] Connected to %s (attempt %d)",
                self.session.config.url,
                self._initial_attempts,
            )
        elif self.state is SupervisorState.RECONNECTING:
            logger.info(
                "[Supervisor] Reconnected successfully (attempt %d)",
                self.backoff.attempt,
            )

        self.backoff.reset()
        self.state = SupervisorState.OPEN
        self.heartbeat.start()
        self.flush()

    def _on_lost(self, event: ConnectionLost) -> None:
        if not self.is_current(event.generation):
            logger.debug("[Supervisor] Ignoring loss from stale generation %d", event.generation)
            return

        self.heartbeat.stop()
        self._last_reason = event.reason
        unsent = self._connection.take_unsent() if self._connection else []
        if unsent:
            self.session.queue.requeue_front(unsent)
            logger.info("[Supervisor] Re-queued %d unsent line(s)", len(unsent))

        if not self.session.opened:
            delay = self.initial_retry.delay_ms(self._initial_attempts)
            logger.debug(
                "[Supervisor] Initial attempt %d failed (%s), retrying in %dms",
                self._initial_attempts,
                event.reason,
                delay,
            )
            self._schedule_attempt(delay)
            return

        self._schedule_reconnect(event.reason)

    def _schedule_reconnect(self, reason: str) -> None:
        self.state = SupervisorState.RECONNECTING
        attempt = self.backoff.next_attempt()
        if self.backoff.exhausted:
            self.session.shutdown.fail(
                ReconnectExhaustedError(self.backoff.max_attempts, reason)
            )
            return

        delay = self.backoff.delay_ms(attempt)
        logger.warning(
            "[Supervisor] Reconnecting in %dms (attempt %d/%d) - %s",
            delay,
            attempt,
            self.backoff.max_attempts,
            reason,
        )
        self._schedule_attempt(delay)

    def _schedule_attempt(self, delay_ms: int) -> None:
        self._cancel_timer("_retry_timer")
        self._retry_timer = self._scheduler.call_later(
            delay_ms / 1000, self.session.dispatch, ConnectAttemptDue()
        )

    def _on_deadline(self, event: ConnectDeadlineExpired) -> None:
        self._deadline_timer = None
        if self.session.opened:
            return
        self._fail_connect_timeout()

    def _fail_connect_timeout(self) -> None:
        self.session.shutdown.fail(
            ConnectTimeoutError(
                self.session.config.connect_timeout_ms,
                attempts=self._initial_attempts,
            )
        )

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _send_probe(self) -> None:
        if self.is_open:
            self._connection.ping()

    def _on_probe_unanswered(self) -> None:
        self.session.dispatch(HeartbeatTimedOut(self._generation))

    def _on_pong(self, event: PongReceived) -> None:
        if self.is_current(event.generation):
            self.heartbeat.pong_received()

    def _on_heartbeat_timeout(self, event: HeartbeatTimedOut) -> None:
        if not self.is_current(event.generation) or not self.is_open:
            return
        logger.warning("[Heartbeat] Pong timeout - connection appears dead")
        self.heartbeat.stop()
        self._connection.terminate()

    def _cancel_timer(self, name: str) -> None:
        timer = getattr(self, name)
        if timer is not None:
            timer.cancel()
            setattr(self, name, None)
