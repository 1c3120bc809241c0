"""
Outbound Queue

Ordered buffer of stdin lines that arrived while no connection was open.
The queue outlives individual connections; it is flushed on every
transition to OPEN.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, Iterable, List, Optional

from wsbridge.core.config import OverflowPolicy
from wsbridge.core.exceptions import QueueOverflowError

logger = logging.getLogger(__name__)


class OutboundQueue:
    """
    FIFO of pending lines.

    Unbounded unless ``max_size`` is given. When bounded and full, the
    overflow policy either drops the oldest pending line or rejects the new
    one with QueueOverflowError.
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        overflow: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
    ):
        self.max_size = max_size
        self.overflow = OverflowPolicy(overflow)
        self._items: Deque[str] = deque()
        self._closed = False
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> List[str]:
        return list(self._items)

    def enqueue(self, line: str) -> bool:
        """
        Append a line.

        Returns:
            False if the queue is closed (bridge exiting), True otherwise

        Raises:
            QueueOverflowError: queue is full and policy is REJECT
        """
        if self._closed:
            return False

        if self.max_size is not None and len(self._items) >= self.max_size:
            if self.overflow is OverflowPolicy.REJECT:
                raise QueueOverflowError(self.max_size)
            self._items.popleft()
            self.dropped += 1
            logger.warning(
                "[OutboundQueue] Full (%d lines), dropped oldest (total dropped: %d)",
                self.max_size,
                self.dropped,
            )

        self._items.append(line)
        return True

    def requeue_front(self, lines: Iterable[str]) -> None:
        """Put lines that never reached the wire back at the head, in order."""
        if self._closed:
            return
        self._items.extendleft(reversed(list(lines)))

    def flush(self, send: Callable[[str], None]) -> int:
        """
        Send every line present when the flush starts, in order.

        Only the snapshotted lines are removed; anything enqueued while
        sending stays queued. If ``send`` raises, the lines already sent are
        removed and the rest stay queued.

        Returns:
            Number of lines sent
        """
        if self._closed:
            return 0

        snapshot = list(self._items)
        sent = 0
        try:
            for line in snapshot:
                send(line)
                sent += 1
        finally:
            for _ in range(sent):
                self._items.popleft()
        return sent

    def close(self) -> None:
        """Stop accepting lines and discard what is pending."""
        self._closed = True
        self._items.clear()
