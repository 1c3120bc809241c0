"""
Tests for ShutdownCoordinator

Orderly vs fatal exits, idempotency, and signal routing.
"""

import asyncio
import logging
import signal

import pytest

from wsbridge.core.exceptions import ConnectTimeoutError, ReconnectExhaustedError
from wsbridge.realtime.supervisor import SupervisorState


class TestOrderlyShutdown:
    def test_eof_while_open_exits_zero(self, make_bridge, caplog):
        h = make_bridge().start_open()

        with caplog.at_level(logging.INFO):
            h.eof()

        assert h.exit_codes == [0]
        assert h.session.closed is True
        assert h.current.closed is True
        assert h.supervisor.state is SupervisorState.CLOSED_EXIT
        assert "stdin closed" in caplog.text

    def test_eof_during_reconnect_cancels_retry(self, make_bridge):
        h = make_bridge().start_open()
        h.current.drop()

        h.eof()
        h.scheduler.advance(60)

        assert h.exit_codes == [0]
        assert len(h.connections) == 1
        assert h.scheduler.pending == []

    def test_signal_requests_shutdown(self, make_bridge, caplog):
        h = make_bridge().start_open()

        with caplog.at_level(logging.INFO):
            h.session.shutdown._on_signal(signal.SIGTERM)

        assert h.exit_codes == [0]
        assert "received SIGTERM" in caplog.text

    def test_sigint_before_open(self, make_bridge):
        h = make_bridge().start()

        h.session.shutdown._on_signal(signal.SIGINT)

        assert h.exit_codes == [0]

    def test_repeated_requests_exit_once(self, make_bridge):
        h = make_bridge().start_open()

        h.eof()
        h.session.shutdown.request_shutdown("again")
        h.session.shutdown._on_signal(signal.SIGTERM)

        assert h.exit_codes == [0]

    def test_close_error_is_ignored(self, make_bridge):
        h = make_bridge().start_open()
        h.current.close_error = RuntimeError("socket already gone")

        h.eof()

        assert h.exit_codes == [0]

    def test_exit_logs_relay_summary(self, make_bridge, caplog):
        h = make_bridge().start_open()
        h.line("a")
        h.line("b")
        h.current.receive("x")
        h.scheduler.advance(30)
        h.current.pong()

        with caplog.at_level(logging.INFO):
            h.eof()

        assert (
            "Relayed 2 line(s) out, 1 frame(s) in; "
            "1 probe(s), 0 heartbeat timeout(s), 0 dropped line(s)"
        ) in caplog.text

    def test_queue_discarded_on_exit(self, make_bridge):
        h = make_bridge().start()
        h.line("never-sent")

        h.eof()

        assert len(h.session.queue) == 0
        assert h.session.queue.closed is True


class TestFatalShutdown:
    def test_fail_exits_one(self, make_bridge, caplog):
        h = make_bridge().start_open()

        with caplog.at_level(logging.INFO):
            h.session.shutdown.fail(ReconnectExhaustedError(3, "refused"))

        assert h.exit_codes == [1]
        assert h.session.exiting is True
        assert "reconnection failed after 3 attempts" in caplog.text
        assert "Relayed 0 line(s) out" in caplog.text

    def test_fail_after_orderly_shutdown_ignored(self, make_bridge):
        h = make_bridge().start()
        h.eof()

        h.session.shutdown.fail(ConnectTimeoutError(500))

        assert h.exit_codes == [0]

    def test_shutdown_after_fail_ignored(self, make_bridge):
        h = make_bridge().start()
        h.session.shutdown.fail(ConnectTimeoutError(500))

        h.eof()

        assert h.exit_codes == [1]

    def test_handler_error_is_fatal(self, make_bridge, caplog):
        h = make_bridge().start_open()
        h.supervisor.send_line = None

        with caplog.at_level(logging.ERROR):
            h.line("boom")

        assert h.exit_codes == [1]
        assert "Unhandled error" in caplog.text


class TestSignalHandlers:
    @pytest.mark.asyncio
    async def test_install_and_remove(self, make_bridge):
        h = make_bridge()
        loop = asyncio.get_running_loop()
        shutdown = h.session.shutdown

        shutdown.install_signal_handlers(loop)
        try:
            assert set(shutdown._installed) == {signal.SIGINT, signal.SIGTERM}
        finally:
            shutdown.remove_signal_handlers(loop)

        assert shutdown._installed == []
