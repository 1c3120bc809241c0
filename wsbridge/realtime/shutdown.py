"""
Shutdown Coordinator

Two exits, both idempotent:
- orderly: stdin EOF, SIGINT or SIGTERM -> exit 0, even before the first
  successful open
- fatal: connect timeout or reconnect attempts exhausted -> exit 1

Neither path waits on the transport; the connection close is best effort.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import List

from wsbridge.core.exceptions import BridgeError
from wsbridge.realtime.events import InputClosed, ShutdownRequested
from wsbridge.realtime.session import EXIT_FATAL, EXIT_OK, BridgeSession

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Drives the bridge into CLOSED_EXIT."""

    def __init__(self, session: BridgeSession):
        self.session = session
        self._installed: List[signal.Signals] = []

        session.register(InputClosed, self._on_input_closed)
        session.register(ShutdownRequested, self._on_shutdown_requested)

    def request_shutdown(self, reason: str) -> None:
        """Orderly shutdown; exit code 0."""
        session = self.session
        if session.closed or session.exited:
            return
        session.closed = True
        logger.info("[Shutdown] %s, closing", reason)
        self._stop_supervisor()
        self._log_summary()
        session.exit(EXIT_OK)

    def fail(self, error: BridgeError) -> None:
        """Fatal exit; exit code 1. Later calls are ignored."""
        session = self.session
        if session.exiting:
            return
        session.exiting = True
        self._stop_supervisor()
        logger.error("[Shutdown] %s", error.message, extra={"error": error.to_dict()})
        self._log_summary()
        session.exit(EXIT_FATAL)

    def _stop_supervisor(self) -> None:
        if self.session.supervisor is not None:
            self.session.supervisor.stop()

    def _log_summary(self) -> None:
        session = self.session
        stdio, supervisor = session.stdio, session.supervisor
        if stdio is None or supervisor is None:
            return
        logger.info(
            "[Shutdown] Relayed %d line(s) out, %d frame(s) in; "
            "%d probe(s), %d heartbeat timeout(s), %d dropped line(s)",
            stdio.lines_in,
            stdio.lines_out,
            supervisor.heartbeat.probes_sent,
            supervisor.heartbeat.timeouts,
            session.queue.dropped,
        )

    def _on_input_closed(self, event: InputClosed) -> None:
        self.request_shutdown("stdin closed")

    def _on_shutdown_requested(self, event: ShutdownRequested) -> None:
        self.request_shutdown(event.reason)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route SIGINT/SIGTERM into ShutdownRequested events on ``loop``."""
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:
                # Windows event loops: fall back to signal.signal
                self._install_fallback(loop, sig)
                continue
            except (ValueError, RuntimeError, OSError) as exc:
                logger.warning("[Shutdown] Signal %s registration failed: %s", sig, exc)
                continue
            self._installed.append(sig)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def _install_fallback(self, loop: asyncio.AbstractEventLoop, sig: signal.Signals) -> None:
        def _handler(signum, frame):
            loop.call_soon_threadsafe(self._on_signal, signum)

        try:
            signal.signal(sig, _handler)
        except (ValueError, OSError) as exc:
            logger.warning("[Shutdown] Signal %s registration failed: %s", sig, exc)

    def _on_signal(self, signum: int) -> None:
        name = signal.Signals(signum).name
        self.session.dispatch(ShutdownRequested(reason=f"received {name}"))
