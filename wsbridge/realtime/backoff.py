"""
Retry schedules.

Two schedules:
- ReconnectBackoff: after the bridge has been open once, exponential
  min(base * 2^(attempt-1), cap) with a hard attempt limit.
- InitialRetrySchedule: before the first open, short linear steps
  min(step * attempt, max), bounded in total by the connect deadline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class ReconnectBackoff:
    """
    Exponential backoff state.

    Attributes:
        base_ms: Delay before the first reconnect attempt
        max_ms: Delay cap
        max_attempts: Attempts allowed before giving up
        attempt: Attempts made since the last successful open
    """

    base_ms: int = 200
    max_ms: int = 5000
    max_attempts: int = 10
    attempt: int = 0

    def next_attempt(self) -> int:
        """Count a new attempt and return its number (1-based)."""
        self.attempt += 1
        return self.attempt

    @property
    def exhausted(self) -> bool:
        return self.attempt > self.max_attempts

    def delay_ms(self, attempt: Optional[int] = None) -> int:
        """Delay before the given (default: current) attempt."""
        n = self.attempt if attempt is None else attempt
        if n < 1:
            return 0
        return min(self.base_ms * (2 ** (n - 1)), self.max_ms)

    def reset(self) -> None:
        self.attempt = 0


@dataclass
class InitialRetrySchedule:
    """Linear retry delay used before the first successful open."""

    step_ms: int = 100
    max_ms: int = 500

    def delay_ms(self, attempt: int) -> int:
        return min(self.step_ms * max(attempt, 1), self.max_ms)
