"""
ws-stdio-proxy - bridge a newline-delimited stdio protocol onto a WebSocket.

Usage:
    ws-stdio-proxy URL [TIMEOUT_MS]
    python -m services.ws_stdio_proxy URL [TIMEOUT_MS]

stdout carries only relayed protocol lines; all diagnostics go to stderr.

Exit codes:
    0  orderly shutdown (stdin EOF, SIGINT, SIGTERM)
    1  fatal (connect timeout exceeded, reconnect attempts exhausted)
    2  usage error (missing URL, invalid configuration)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import BinaryIO, List, Optional

from wsbridge.core.config import DEFAULT_CONNECT_TIMEOUT_MS, BridgeConfig, load_config
from wsbridge.core.exceptions import ConfigurationError
from wsbridge.core.structured_logging import configure_logging
from wsbridge.realtime.bridge import create_bridge
from wsbridge.realtime.connection import ConnectionFactory, websocket_connection_factory
from wsbridge.realtime.scheduler import LoopScheduler
from wsbridge.realtime.session import EXIT_FATAL

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ws-stdio-proxy",
        description="Relay stdin/stdout lines over a reconnecting WebSocket",
    )
    parser.add_argument("url", nargs="?", help="WebSocket endpoint (ws:// or wss://)")
    parser.add_argument(
        "timeout_ms",
        nargs="?",
        type=int,
        default=DEFAULT_CONNECT_TIMEOUT_MS,
        help=f"Initial connect timeout in ms (default: {DEFAULT_CONNECT_TIMEOUT_MS})",
    )
    return parser.parse_args(argv)


async def run_bridge(
    config: BridgeConfig,
    *,
    input_stream: Optional[BinaryIO] = None,
    output_stream: Optional[BinaryIO] = None,
    connection_factory: Optional[ConnectionFactory] = None,
    install_signals: bool = True,
) -> int:
    """
    Run the bridge until it exits.

    Returns:
        Process exit code
    """
    loop = asyncio.get_running_loop()
    scheduler = LoopScheduler(loop)
    done: asyncio.Future = loop.create_future()

    def _on_exit(code: int) -> None:
        if not done.done():
            done.set_result(code)

    session = create_bridge(
        config,
        scheduler,
        connection_factory or websocket_connection_factory(config, scheduler),
        input_stream=input_stream,
        output_stream=output_stream,
        on_exit=_on_exit,
    )
    logger.debug("[Main] Session %s: %s", session.session_id, config)

    if install_signals:
        session.shutdown.install_signal_handlers(loop)
    try:
        session.stdio.start_reader(loop)
        session.supervisor.start()
        code = await done
        await session.supervisor.wait_closed(config.close_grace_ms / 1000)
    finally:
        if install_signals:
            session.shutdown.remove_signal_handlers(loop)

    return code


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    configure_logging()
    args = parse_args(argv)

    try:
        config = load_config(args.url, args.timeout_ms)
    except ConfigurationError as e:
        logger.error("%s", e.message)
        for detail in e.details.get("errors", []):
            logger.error("  %s", detail)
        return e.exit_code

    configure_logging(
        level=config.log_level,
        json_format=config.log_json,
        log_file=config.log_file,
    )

    try:
        return asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        return 0
    except Exception:
        logger.exception("[Main] Fatal error")
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
