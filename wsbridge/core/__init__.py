# Core library
from wsbridge.core.config import (
    BridgeConfig,
    OverflowPolicy,
    load_config,
)
from wsbridge.core.exceptions import (
    BridgeError,
    ConfigurationError,
    ConnectTimeoutError,
    InvalidConfigError,
    MissingConfigError,
    QueueError,
    QueueOverflowError,
    ReconnectExhaustedError,
    TransportError,
)
from wsbridge.core.structured_logging import (
    JSONFormatter,
    configure_logging,
    generate_session_id,
    get_session_id,
)

__all__ = [
    "BridgeConfig",
    "OverflowPolicy",
    "load_config",
    "BridgeError",
    "ConfigurationError",
    "ConnectTimeoutError",
    "InvalidConfigError",
    "MissingConfigError",
    "QueueError",
    "QueueOverflowError",
    "ReconnectExhaustedError",
    "TransportError",
    "JSONFormatter",
    "configure_logging",
    "generate_session_id",
    "get_session_id",
]
