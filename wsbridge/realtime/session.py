"""
Bridge Session

One owned object holding everything mutable about a running bridge:
lifecycle flags, the outbound queue, the exit code, and references to the
components. Every event goes through ``dispatch``, which runs one handler
to completion before returning.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Type

from wsbridge.core.config import BridgeConfig
from wsbridge.core.exceptions import BridgeError
from wsbridge.core.structured_logging import generate_session_id
from wsbridge.realtime.events import BridgeEvent
from wsbridge.realtime.outbound_queue import OutboundQueue
from wsbridge.realtime.scheduler import Scheduler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


class BridgeSession:
    """
    State shared by the bridge components.

    Attributes:
        opened: The bridge reached OPEN at least once
        closed: Local shutdown was requested (EOF or signal)
        exiting: Terminal; no further reconnect/heartbeat/queue activity
        exit_code: Set exactly once when the bridge finishes
    """

    def __init__(
        self,
        config: BridgeConfig,
        scheduler: Scheduler,
        *,
        on_exit: Optional[Callable[[int], None]] = None,
    ):
        self.config = config
        self.scheduler = scheduler
        self.session_id = generate_session_id()
        self.started_at = scheduler.now()

        self.queue = OutboundQueue(
            max_size=config.queue_max_size,
            overflow=config.queue_overflow,
        )

        self.opened = False
        self.closed = False
        self.exiting = False
        self.exit_code: Optional[int] = None

        self._on_exit = on_exit
        self._handlers: Dict[Type[BridgeEvent], Callable] = {}

        # Wired by create_bridge()
        self.supervisor = None
        self.shutdown = None
        self.stdio = None

    @property
    def exited(self) -> bool:
        return self.exit_code is not None

    @property
    def elapsed_ms(self) -> float:
        return (self.scheduler.now() - self.started_at) * 1000

    def register(self, event_type: Type[BridgeEvent], handler: Callable) -> None:
        if event_type in self._handlers:
            raise ValueError(f"Handler already registered for {event_type.__name__}")
        self._handlers[event_type] = handler

    def dispatch(self, event: BridgeEvent) -> None:
        """Route one event to its handler. Events after exit are dropped."""
        if self.exited:
            logger.debug("[Session] Dropping %s after exit", type(event).__name__)
            return

        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("[Session] No handler for %s", type(event).__name__)
            return

        try:
            handler(event)
        except Exception as e:
            logger.exception("[Session] Unhandled error in %s handler", type(event).__name__)
            if self.shutdown is not None:
                self.shutdown.fail(
                    BridgeError(f"Unhandled error: {e}", cause=e)
                )
            else:
                self.exit(EXIT_FATAL)

    def exit(self, code: int) -> None:
        """Finish the session. Only the first call has any effect."""
        if self.exited:
            return
        self.exiting = True
        self.exit_code = code
        self.queue.close()
        logger.debug("[Session] Exit with code %d", code)
        if self._on_exit is not None:
            self._on_exit(code)

