"""
Timer scheduling for the bridge.

Every delay in the bridge (connect deadline, retry/backoff, heartbeat probe
and timeout) is a scheduled callback rather than a blocking wait, so the
process stays responsive to shutdown. ``LoopScheduler`` runs timers on the
asyncio event loop; ``ManualScheduler`` keeps virtual time for tests.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    """Anything with ``cancel()``; asyncio.TimerHandle satisfies it."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock and timer source used by every bridge component."""

    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` after ``delay`` seconds."""
        ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time()

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay), callback, *args)


class ManualTimer:
    """Timer created by ManualScheduler."""

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler with virtual time.

    Timers fire only when ``advance()`` moves the clock past them, in
    deadline order (ties in creation order). Callbacks may schedule new
    timers; those fire within the same ``advance()`` if they fall due.

    Example:
        scheduler = ManualScheduler()
        scheduler.call_later(0.2, reconnect)
        scheduler.advance(0.2)  # reconnect() runs here
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._timers: List[Tuple[float, int, ManualTimer]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._timers, (timer.when, next(self._counter), timer))
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        """Live (not cancelled) timers, soonest first."""
        return [t for _, _, t in sorted(self._timers) if not t.cancelled]

    def next_delay(self) -> Optional[float]:
        """Seconds until the next live timer, or None if nothing is pending."""
        live = self.pending
        if not live:
            return None
        return live[0].when - self._now

    def advance(self, seconds: float) -> int:
        """
        Move virtual time forward, firing due timers.

        Returns:
            Number of callbacks fired
        """
        return self._run_until(self._now + seconds)

    def _run_until(self, target: float) -> int:
        fired = 0
        while self._timers and self._timers[0][0] <= target:
            when, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback(*timer.args)
            fired += 1
        self._now = target
        return fired

    def run_next(self) -> bool:
        """Jump to the next live timer and fire it. Returns False if none."""
        live = self.pending
        if not live:
            return False
        self._run_until(live[0].when)
        return True

