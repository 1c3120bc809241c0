"""
Configuration schema and loader for the stdio <-> WebSocket bridge.
Uses Pydantic for validation; tuning knobs come from WS_PROXY_* environment
variables (optionally via a .env file), the endpoint and connect timeout
from the command line.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from wsbridge.core.exceptions import InvalidConfigError, MissingConfigError

ENV_PREFIX = "WS_PROXY_"
DEFAULT_CONNECT_TIMEOUT_MS = 10000


def _env(name: str, default=None):
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


class OverflowPolicy(str, Enum):
    """What the outbound queue does when it reaches ``queue_max_size``."""
    DROP_OLDEST = "drop_oldest"
    REJECT = "reject"


class BridgeConfig(BaseModel):
    """
    Bridge configuration.

    Durations are milliseconds, matching the command-line timeout argument.
    """
    model_config = ConfigDict(validate_default=True)

    url: str = Field(..., min_length=1, description="WebSocket endpoint address")
    connect_timeout_ms: int = Field(
        default=DEFAULT_CONNECT_TIMEOUT_MS,
        gt=0,
        description="Wall-clock budget for the first successful open",
    )

    # Post-open reconnection (exponential backoff)
    reconnect_base_ms: int = Field(
        default_factory=lambda: _env("RECONNECT_BASE_MS", 200), gt=0
    )
    reconnect_max_ms: int = Field(
        default_factory=lambda: _env("RECONNECT_MAX_MS", 5000), gt=0
    )
    max_reconnect_attempts: int = Field(
        default_factory=lambda: _env("MAX_RECONNECT_ATTEMPTS", 10), ge=1
    )

    # Pre-open retry: min(step * attempt, max)
    initial_retry_step_ms: int = Field(
        default_factory=lambda: _env("INITIAL_RETRY_STEP_MS", 100), gt=0
    )
    initial_retry_max_ms: int = Field(
        default_factory=lambda: _env("INITIAL_RETRY_MAX_MS", 500), gt=0
    )

    # Heartbeat
    ping_interval_ms: int = Field(
        default_factory=lambda: _env("PING_INTERVAL_MS", 30000), gt=0
    )
    pong_timeout_ms: int = Field(
        default_factory=lambda: _env("PONG_TIMEOUT_MS", 10000), gt=0
    )

    # Transport
    open_timeout_ms: int = Field(
        default_factory=lambda: _env("OPEN_TIMEOUT_MS", 10000),
        gt=0,
        description="Handshake timeout for a single connection attempt",
    )
    close_grace_ms: int = Field(
        default_factory=lambda: _env("CLOSE_GRACE_MS", 1000),
        ge=0,
        description="Upper bound on waiting for a best-effort close at exit",
    )

    # Outbound queue
    queue_max_size: Optional[int] = Field(
        default_factory=lambda: _env("QUEUE_MAX_SIZE"),
        ge=1,
        description="Maximum queued lines while disconnected (None = unbounded)",
    )
    queue_overflow: OverflowPolicy = Field(
        default_factory=lambda: _env("QUEUE_OVERFLOW", OverflowPolicy.DROP_OLDEST)
    )

    # Logging
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
    log_json: bool = Field(default_factory=lambda: _env("LOG_JSON", False))
    log_file: Optional[str] = Field(default_factory=lambda: _env("LOG_FILE"))

    @model_validator(mode="after")
    def _check_relations(self) -> "BridgeConfig":
        if self.reconnect_max_ms < self.reconnect_base_ms:
            raise ValueError("reconnect_max_ms must be >= reconnect_base_ms")
        if self.initial_retry_max_ms < self.initial_retry_step_ms:
            raise ValueError("initial_retry_max_ms must be >= initial_retry_step_ms")
        if self.pong_timeout_ms >= self.ping_interval_ms:
            raise ValueError("pong_timeout_ms must be < ping_interval_ms")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"unknown log_level {self.log_level!r}")
        return self

    def __str__(self) -> str:
        return (
            f"BridgeConfig(url={self.url}, "
            f"connect_timeout_ms={self.connect_timeout_ms}, "
            f"reconnect={self.reconnect_base_ms}..{self.reconnect_max_ms}ms"
            f"x{self.max_reconnect_attempts}, "
            f"heartbeat={self.ping_interval_ms}/{self.pong_timeout_ms}ms)"
        )


def load_config(
    url: Optional[str],
    connect_timeout_ms: Optional[int] = None,
    *,
    env_file: Optional[str] = None,
    **overrides,
) -> BridgeConfig:
    """
    Build the bridge configuration.

    Priority:
    1. Explicit arguments / overrides
    2. WS_PROXY_* environment variables (.env file loaded first, without
       overriding variables already set)
    3. Defaults

    Raises:
        MissingConfigError: url is missing
        InvalidConfigError: any value fails validation
    """
    if not url:
        raise MissingConfigError("Missing URL argument")

    load_dotenv(env_file, override=False)

    data = {"url": url, **overrides}
    if connect_timeout_ms is not None:
        data["connect_timeout_ms"] = connect_timeout_ms

    try:
        return BridgeConfig(**data)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise InvalidConfigError(
            "Invalid bridge configuration",
            details={"errors": errors},
            cause=exc,
        ) from exc
