"""
wsbridge Test Configuration
- WS_PROXY_* environment isolation
- FakeConnection / BridgeHarness for driving the state machine on virtual time
"""

import io
import logging
import os
from typing import List

import pytest

from wsbridge.core.config import BridgeConfig
from wsbridge.realtime.bridge import create_bridge
from wsbridge.realtime.connection import ABNORMAL_CLOSURE, ConnectionState
from wsbridge.realtime.events import (
    ConnectionLost,
    ConnectionOpened,
    FrameReceived,
    InputClosed,
    InputLine,
    PongReceived,
)
from wsbridge.realtime.scheduler import ManualScheduler

TEST_URL = "ws://bridge.test/ws"


class FakeConnection:
    """In-memory Connection; the test decides when it opens or drops."""

    def __init__(self, generation, dispatch, scheduler):
        self.generation = generation
        self.created_at = scheduler.now()
        self.state = ConnectionState.CONNECTING
        self._dispatch = dispatch
        self._scheduler = scheduler

        self.started = False
        self.sent: List[str] = []
        self.unsent: List[str] = []
        self.pings = 0
        self.terminated = False
        self.closed = False
        self.close_error = None

    # Connection protocol

    def start(self):
        self.started = True

    def send(self, line):
        self.sent.append(line)

    def ping(self):
        self.pings += 1

    def terminate(self):
        self.terminated = True
        self.state = ConnectionState.CLOSED
        self._scheduler.call_later(
            0,
            self._dispatch,
            ConnectionLost(self.generation, "WebSocket terminated", ABNORMAL_CLOSURE),
        )

    def close(self):
        self.closed = True
        self.state = ConnectionState.CLOSED
        if self.close_error is not None:
            raise self.close_error

    def take_unsent(self):
        unsent, self.unsent = self.unsent, []
        return unsent

    async def wait_closed(self, timeout):
        return None

    # Test controls

    def open(self):
        self.state = ConnectionState.OPEN
        self._dispatch(ConnectionOpened(self.generation))

    def drop(self, reason="WebSocket closed (code=1006)", code=ABNORMAL_CLOSURE):
        self.state = ConnectionState.CLOSED
        self._dispatch(ConnectionLost(self.generation, reason, code))

    def receive(self, data):
        self._dispatch(FrameReceived(self.generation, data))

    def pong(self):
        self._dispatch(PongReceived(self.generation))


class BridgeHarness:
    """A fully wired bridge on a ManualScheduler with FakeConnections."""

    def __init__(self, config: BridgeConfig, input_stream=None, output_stream=None):
        self.config = config
        self.scheduler = ManualScheduler()
        self.connections: List[FakeConnection] = []
        self.output = output_stream if output_stream is not None else io.BytesIO()
        self.exit_codes: List[int] = []
        self.session = create_bridge(
            config,
            self.scheduler,
            self._factory,
            input_stream=input_stream if input_stream is not None else io.BytesIO(),
            output_stream=self.output,
            on_exit=self.exit_codes.append,
        )

    def _factory(self, generation, dispatch):
        conn = FakeConnection(generation, dispatch, self.scheduler)
        self.connections.append(conn)
        return conn

    @property
    def supervisor(self):
        return self.session.supervisor

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]

    def start(self):
        self.supervisor.start()
        return self

    def start_open(self):
        self.start()
        self.current.open()
        return self

    def line(self, text):
        self.session.dispatch(InputLine(text))

    def eof(self):
        self.session.dispatch(InputClosed())

    def stdout(self) -> str:
        return self.output.getvalue().decode("utf-8")


@pytest.fixture(autouse=True)
def clean_proxy_env(monkeypatch):
    """Keep WS_PROXY_* settings from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("WS_PROXY_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """configure_logging() replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def make_config():
    """Factory for BridgeConfig with test defaults."""

    def _make(**overrides):
        data = {"url": TEST_URL, "connect_timeout_ms": 10000}
        data.update(overrides)
        return BridgeConfig(**data)

    return _make


@pytest.fixture
def make_bridge(make_config):
    """
    Factory for BridgeHarness.

    Usage:
        def test_something(make_bridge):
            h = make_bridge(connect_timeout_ms=500).start()
    """

    def _make(input_stream=None, output_stream=None, **overrides):
        return BridgeHarness(
            make_config(**overrides),
            input_stream=input_stream,
            output_stream=output_stream,
        )

    return _make
