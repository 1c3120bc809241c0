"""
Bridge assembly.

Builds a BridgeSession with all components wired to it. Nothing starts
until ``session.supervisor.start()`` (and, for real stdin,
``session.stdio.start_reader()``) is called.
"""

from __future__ import annotations

from typing import BinaryIO, Callable, Optional

from wsbridge.core.config import BridgeConfig
from wsbridge.realtime.connection import ConnectionFactory
from wsbridge.realtime.scheduler import Scheduler
from wsbridge.realtime.session import BridgeSession
from wsbridge.realtime.shutdown import ShutdownCoordinator
from wsbridge.realtime.stdio_adapter import StdioAdapter
from wsbridge.realtime.supervisor import ConnectionSupervisor


def create_bridge(
    config: BridgeConfig,
    scheduler: Scheduler,
    connection_factory: ConnectionFactory,
    *,
    input_stream: Optional[BinaryIO] = None,
    output_stream: Optional[BinaryIO] = None,
    on_exit: Optional[Callable[[int], None]] = None,
) -> BridgeSession:
    session = BridgeSession(config, scheduler, on_exit=on_exit)
    session.shutdown = ShutdownCoordinator(session)
    session.supervisor = ConnectionSupervisor(session, connection_factory)
    session.stdio = StdioAdapter(
        session, input_stream=input_stream, output_stream=output_stream
    )
    return session
