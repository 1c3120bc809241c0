"""
Tests for HeartbeatMonitor on virtual time.
"""

from unittest.mock import MagicMock

import pytest

from wsbridge.realtime.heartbeat import HeartbeatMonitor
from wsbridge.realtime.scheduler import ManualScheduler


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def monitor(scheduler):
    return HeartbeatMonitor(
        scheduler,
        interval=30.0,
        timeout=10.0,
        send_probe=MagicMock(),
        on_timeout=MagicMock(),
    )


class TestProbing:
    def test_not_running_until_started(self, monitor, scheduler):
        scheduler.advance(120)
        assert monitor.running is False
        monitor._send_probe.assert_not_called()

    def test_probe_sent_every_interval(self, monitor, scheduler):
        monitor.start()

        scheduler.advance(29.9)
        assert monitor.probes_sent == 0

        scheduler.advance(0.1)
        assert monitor.probes_sent == 1
        assert monitor.awaiting_pong is True

        monitor.pong_received()
        scheduler.advance(30)
        assert monitor.probes_sent == 2

    def test_restart_cancels_previous_timers(self, monitor, scheduler):
        monitor.start()
        scheduler.advance(20)
        monitor.start()

        scheduler.advance(20)
        assert monitor.probes_sent == 0

        scheduler.advance(10)
        assert monitor.probes_sent == 1


class TestTimeout:
    def test_unanswered_probe_times_out_once(self, monitor, scheduler):
        monitor.start()
        scheduler.advance(30)

        scheduler.advance(10)

        monitor._on_timeout.assert_called_once()
        assert monitor.timeouts == 1
        assert monitor.awaiting_pong is False

    def test_pong_cancels_timeout_without_other_effect(self, monitor, scheduler):
        monitor.start()
        scheduler.advance(30)

        assert monitor.pong_received() is True
        scheduler.advance(10)

        monitor._on_timeout.assert_not_called()
        assert monitor.running is True
        assert monitor.probes_sent == 1

    def test_pong_without_pending_probe(self, monitor):
        monitor.start()
        assert monitor.pong_received() is False

    def test_at_most_one_timeout_pending(self, scheduler):
        """A new probe replaces an unanswered timeout instead of stacking."""
        monitor = HeartbeatMonitor(
            scheduler,
            interval=1.0,
            timeout=5.0,
            send_probe=MagicMock(),
            on_timeout=MagicMock(),
        )
        monitor.start()

        scheduler.advance(3)

        assert monitor.probes_sent == 3
        assert monitor.timeouts == 0
        timers = [t for t in scheduler.pending if t.callback == monitor._expire]
        assert len(timers) == 1


class TestStop:
    def test_stop_cancels_probe_and_timeout(self, monitor, scheduler):
        monitor.start()
        scheduler.advance(30)

        monitor.stop()
        scheduler.advance(300)

        monitor._on_timeout.assert_not_called()
        assert monitor.probes_sent == 1
        assert monitor.running is False
        assert scheduler.pending == []
