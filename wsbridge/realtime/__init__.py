"""
Real-time bridge between a line-oriented stdio protocol and a WebSocket.

- ConnectionSupervisor: reconnection state machine with exponential backoff
- HeartbeatMonitor: ping/pong liveness probe
- OutboundQueue: ordered buffer while disconnected
- StdioAdapter / ShutdownCoordinator: process edges
"""

from wsbridge.realtime.bridge import create_bridge
from wsbridge.realtime.connection import (
    ConnectionState,
    WebSocketConnection,
    websocket_connection_factory,
)
from wsbridge.realtime.frame_codec import decode_frame, encode_line
from wsbridge.realtime.heartbeat import HeartbeatMonitor
from wsbridge.realtime.outbound_queue import OutboundQueue
from wsbridge.realtime.scheduler import LoopScheduler, ManualScheduler
from wsbridge.realtime.session import BridgeSession
from wsbridge.realtime.supervisor import ConnectionSupervisor, SupervisorState

__all__ = [
    "create_bridge",
    "ConnectionState",
    "WebSocketConnection",
    "websocket_connection_factory",
    "decode_frame",
    "encode_line",
    "HeartbeatMonitor",
    "OutboundQueue",
    "LoopScheduler",
    "ManualScheduler",
    "BridgeSession",
    "ConnectionSupervisor",
    "SupervisorState",
]
