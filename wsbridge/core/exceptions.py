"""
Custom Exception Hierarchy for wsbridge

Structured exceptions shared by the configuration layer and the
connection supervisor. Fatal bridge conditions are represented as
exceptions so their message and code can be logged uniformly before exit.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BridgeError(Exception):
    """
    Base exception for all bridge errors.

    All custom exceptions should inherit from this class.
    """

    error_code: str = "BRIDGE_ERROR"
    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        """
        Initialize bridge error.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional context/details
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            parts.append(f" Details: {self.details}")
        if self.cause:
            parts.append(f" Caused by: {self.cause}")
        return "".join(parts)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(BridgeError):
    """Base class for configuration-related errors."""

    error_code = "CONFIG_ERROR"
    exit_code = 2


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    error_code = "CONFIG_MISSING"


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    error_code = "CONFIG_INVALID"


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(BridgeError):
    """Base class for WebSocket transport errors."""

    error_code = "TRANSPORT_ERROR"


class ConnectTimeoutError(TransportError):
    """Initial connection was not established within the connect timeout."""

    error_code = "TRANSPORT_CONNECT_TIMEOUT"

    def __init__(self, timeout_ms: int, *, attempts: int = 0, **kwargs):
        super().__init__(
            f"Failed to connect within {timeout_ms}ms",
            details={"timeout_ms": timeout_ms, "attempts": attempts},
            **kwargs,
        )
        self.timeout_ms = timeout_ms
        self.attempts = attempts


class ReconnectExhaustedError(TransportError):
    """Reconnection attempts after a successful open were exhausted."""

    error_code = "TRANSPORT_RECONNECT_EXHAUSTED"

    def __init__(self, max_attempts: int, last_reason: str, **kwargs):
        super().__init__(
            f"WebSocket reconnection failed after {max_attempts} attempts "
            f"(last: {last_reason})",
            details={"max_attempts": max_attempts},
            **kwargs,
        )
        self.max_attempts = max_attempts
        self.last_reason = last_reason


# =============================================================================
# Queue Errors
# =============================================================================


class QueueError(BridgeError):
    """Base class for outbound queue errors."""

    error_code = "QUEUE_ERROR"


class QueueOverflowError(QueueError):
    """Outbound queue is full and the overflow policy rejects new lines."""

    error_code = "QUEUE_OVERFLOW"

    def __init__(self, max_size: int, **kwargs):
        super().__init__(
            f"Outbound queue full ({max_size} lines)",
            details={"max_size": max_size},
            **kwargs,
        )
        self.max_size = max_size

