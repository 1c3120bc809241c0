"""
Heartbeat Monitor

Detects half-dead connections: the TCP socket is still up but the remote
peer has stopped answering. While the bridge is OPEN a WebSocket ping is
sent every ``interval`` seconds and a ``timeout`` timer is armed; a pong
cancels it, an expired timer reports the connection as dead.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from wsbridge.realtime.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class HeartbeatMonitor:
    """
    Recurring probe timer plus one rearmable timeout timer.

    At most one timeout is pending at any time; a new probe replaces it.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval: float,
        timeout: float,
        send_probe: Callable[[], None],
        on_timeout: Callable[[], None],
    ):
        """
        Args:
            scheduler: Timer source
            interval: Seconds between probes
            timeout: Seconds to wait for a pong after each probe
            send_probe: Sends one ping on the current connection
            on_timeout: Called once when a probe goes unanswered
        """
        self._scheduler = scheduler
        self.interval = interval
        self.timeout = timeout
        self._send_probe = send_probe
        self._on_timeout = on_timeout

        self._probe_timer: Optional[TimerHandle] = None
        self._timeout_timer: Optional[TimerHandle] = None

        self.probes_sent = 0
        self.timeouts = 0

    @property
    def running(self) -> bool:
        return self._probe_timer is not None

    @property
    def awaiting_pong(self) -> bool:
        return self._timeout_timer is not None

    def start(self) -> None:
        """(Re)start probing; any previous timers are cancelled first."""
        self.stop()
        self._probe_timer = self._scheduler.call_later(self.interval, self._probe)

    def stop(self) -> None:
        """Cancel both timers."""
        if self._probe_timer is not None:
            self._probe_timer.cancel()
            self._probe_timer = None
        self._cancel_timeout()

    def pong_received(self) -> bool:
        """
        Record a liveness response.

        Returns:
            True if it cancelled a pending timeout
        """
        if self._timeout_timer is None:
            return False
        self._cancel_timeout()
        logger.debug("[Heartbeat] Pong received")
        return True

    def _cancel_timeout(self) -> None:
        if self._timeout_timer is not None:
            self._timeout_timer.cancel()
            self._timeout_timer = None

    def _probe(self) -> None:
        self._probe_timer = self._scheduler.call_later(self.interval, self._probe)
        self._cancel_timeout()
        self.probes_sent += 1
        self._send_probe()
        self._timeout_timer = self._scheduler.call_later(self.timeout, self._expire)

    def _expire(self) -> None:
        self._timeout_timer = None
        self.timeouts += 1
        self._on_timeout()
