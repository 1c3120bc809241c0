"""
Bridge events.

Everything that can change bridge state arrives as one of these events and
is routed through ``BridgeSession.dispatch``. Transport events carry the
generation of the Connection that produced them so stale ones can be
dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class BridgeEvent:
    """Base class for all events."""


# Transport events


@dataclass(frozen=True)
class ConnectionOpened(BridgeEvent):
    generation: int


@dataclass(frozen=True)
class FrameReceived(BridgeEvent):
    generation: int
    data: Any


@dataclass(frozen=True)
class PongReceived(BridgeEvent):
    generation: int


@dataclass(frozen=True)
class ConnectionLost(BridgeEvent):
    """Close or error; a Connection reports exactly one of these."""

    generation: int
    reason: str
    code: Optional[int] = None


# Timer events


@dataclass(frozen=True)
class ConnectAttemptDue(BridgeEvent):
    pass


@dataclass(frozen=True)
class ConnectDeadlineExpired(BridgeEvent):
    pass


@dataclass(frozen=True)
class HeartbeatTimedOut(BridgeEvent):
    generation: int


# Local events


@dataclass(frozen=True)
class InputLine(BridgeEvent):
    line: str


@dataclass(frozen=True)
class InputClosed(BridgeEvent):
    pass


@dataclass(frozen=True)
class ShutdownRequested(BridgeEvent):
    reason: str
