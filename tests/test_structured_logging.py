"""
Tests for structured logging

Diagnostics must never reach stdout.
"""

import io
import json
import logging
import sys

from wsbridge.core.exceptions import ConnectTimeoutError
from wsbridge.core.structured_logging import (
    JSONFormatter,
    configure_logging,
    generate_session_id,
    get_session_id,
    set_session_id,
)


def make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("wsbridge.test", level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestConfigureLogging:
    def test_text_format_to_stream(self):
        stream = io.StringIO()
        configure_logging(stream=stream)

        logging.getLogger("wsbridge.test").warning("Reconnecting in %dms", 200)

        assert stream.getvalue() == "[ws-proxy] WARNING Reconnecting in 200ms\n"

    def test_default_stream_is_stderr(self, capsys):
        configure_logging()

        logging.getLogger("wsbridge.test").error("to stderr")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "to stderr" in captured.err

    def test_level_filters(self):
        stream = io.StringIO()
        configure_logging(level="warning", stream=stream)

        logging.getLogger("wsbridge.test").info("quiet")

        assert stream.getvalue() == ""

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "bridge.log"
        configure_logging(log_file=str(log_file), stream=io.StringIO())

        logging.getLogger("wsbridge.test").info("persisted")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "persisted" in log_file.read_text(encoding="utf-8")

    def test_reconfigure_replaces_handlers(self):
        configure_logging(stream=io.StringIO())
        configure_logging(stream=io.StringIO())

        assert len(logging.getLogger().handlers) == 1


class TestJSONFormatter:
    def test_fields(self):
        set_session_id("abc12345")
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "wsbridge.test"
        assert data["message"] == "hello"
        assert data["session_id"] == "abc12345"
        assert data["timestamp"].endswith("Z")

    def test_extra_error_serialized(self):
        error = ConnectTimeoutError(500)
        record = make_record("failed", error=error.to_dict())

        data = json.loads(JSONFormatter(include_timestamp=False).format(record))

        assert data["error"]["error_code"] == "TRANSPORT_CONNECT_TIMEOUT"
        assert "timestamp" not in data

    def test_exception_info(self):
        try:
            raise ValueError("bad frame")
        except ValueError:
            record = logging.LogRecord(
                "wsbridge.test", logging.ERROR, __file__, 1, "oops", (), sys.exc_info()
            )

        data = json.loads(JSONFormatter().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad frame"
        assert data["exception"]["traceback"]

    def test_extra_fields(self):
        formatter = JSONFormatter(extra_fields={"service": "ws-proxy"})

        data = json.loads(formatter.format(make_record()))

        assert data["service"] == "ws-proxy"


class TestSessionId:
    def test_generate_sets_current(self):
        session_id = generate_session_id()

        assert len(session_id) == 8
        assert get_session_id() == session_id
