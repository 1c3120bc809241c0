"""
Structured Logging for wsbridge

All diagnostics go to stderr: stdout is reserved for relayed protocol
lines. Provides a tagged text format for humans and a JSON format for
log collectors, with a per-process session id attached to JSON records.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Union

LOG_TAG = "ws-proxy"
TEXT_FORMAT = f"[{LOG_TAG}] %(levelname)s %(message)s"

_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


def get_session_id() -> Optional[str]:
    """Get current bridge session ID."""
    return _session_id.get()


def set_session_id(session_id: str) -> None:
    """Set bridge session ID for current context."""
    _session_id.set(session_id)


def generate_session_id() -> str:
    """Generate and set a new session ID."""
    session_id = str(uuid.uuid4())[:8]
    set_session_id(session_id)
    return session_id


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs log records as JSON objects with standardized fields.
    """

    STANDARD_FIELDS = {
        "timestamp",
        "level",
        "logger",
        "message",
        "session_id",
    }

    # Attributes present on every LogRecord instance; anything else came in
    # through ``extra=``.
    _RECORD_ATTRS = set(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def __init__(
        self,
        *,
        include_timestamp: bool = True,
        include_traceback: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize JSON formatter.

        Args:
            include_timestamp: Include ISO timestamp
            include_traceback: Include traceback for exceptions
            extra_fields: Additional fields to include in every log
        """
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_traceback = include_traceback
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {}

        if self.include_timestamp:
            log_data["timestamp"] = (
                datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            )

        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.getMessage()

        if session_id := get_session_id():
            log_data["session_id"] = session_id

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
            }
            if self.include_traceback:
                log_data["exception"]["traceback"] = self._format_traceback(
                    record.exc_info
                )

        for key, value in record.__dict__.items():
            if key in self._RECORD_ATTRS or key.startswith("_"):
                continue
            if key not in self.STANDARD_FIELDS:
                log_data[key] = self._serialize_value(value)

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str)

    def _format_traceback(self, exc_info) -> list:
        """Format exception traceback as list of frames."""
        if not exc_info[2]:
            return []

        return [
            {
                "file": frame.filename,
                "line": frame.lineno,
                "function": frame.name,
            }
            for frame in traceback.extract_tb(exc_info[2])
        ]

    def _serialize_value(self, value: Any) -> Any:
        """Serialize value for JSON output."""
        if isinstance(value, (str, int, float, bool, type(None))):
            return value
        if isinstance(value, (list, tuple)):
            return [self._serialize_value(v) for v in value]
        if isinstance(value, dict):
            return {k: self._serialize_value(v) for k, v in value.items()}
        if hasattr(value, "to_dict"):
            return value.to_dict()
        return str(value)


def configure_logging(
    *,
    level: Union[str, int] = logging.INFO,
    json_format: bool = False,
    log_file: Optional[str] = None,
    extra_fields: Optional[Dict[str, Any]] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure logging for the bridge process.

    Args:
        level: Log level
        json_format: Use JSON formatting
        log_file: Optional log file path
        extra_fields: Extra fields to include in all JSON logs
        stream: Diagnostic stream (default: stderr, never stdout)
    """
    if isinstance(level, str):
        level = level.upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = JSONFormatter(extra_fields=extra_fields)
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
