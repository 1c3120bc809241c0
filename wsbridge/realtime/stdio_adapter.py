"""
Stdio Adapter

stdin: newline-delimited UTF-8, one outbound message per non-empty line.
stdout: one decoded inbound frame per line, nothing else ever.

stdin is read on a daemon thread (blocking reads on pipes and ttys are not
portable through asyncio) and each line is handed to the event loop with
``call_soon_threadsafe``, so the loop remains the only consumer. The thread
reads the raw file descriptor with ``os.read``: a thread parked inside a
buffered ``readline`` holds the BufferedReader lock, and the interpreter
aborts if that lock is still taken when the process exits.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import os
import sys
import threading
from typing import BinaryIO, Callable, Iterator, Optional

from wsbridge.core.exceptions import QueueOverflowError
from wsbridge.realtime.events import FrameReceived, InputClosed, InputLine
from wsbridge.realtime.frame_codec import ENCODING, decode_frame
from wsbridge.realtime.session import BridgeSession

logger = logging.getLogger(__name__)

READ_CHUNK = 65536


def normalize_line(raw: bytes) -> str:
    """Decode one raw stdin line and strip its LF / CRLF terminator."""
    text = raw.decode(ENCODING, errors="replace")
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text


def chunk_reader(stream: BinaryIO) -> Callable[[], bytes]:
    """
    Return a function reading the next chunk of ``stream`` (b"" at EOF).

    Streams backed by a file descriptor are read with ``os.read`` so no
    buffered-IO lock is held while blocked; in-memory streams are read
    directly.
    """
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        return lambda: stream.read(READ_CHUNK)
    return lambda: os.read(fd, READ_CHUNK)


def iter_lines(read: Callable[[], bytes]) -> Iterator[bytes]:
    """Split chunks from ``read`` into lines, keeping each terminator."""
    pending = b""
    while True:
        chunk = read()
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line + b"\n"
    if pending:
        yield pending


class StdioAdapter:
    """Moves lines between the process streams and the supervisor."""

    def __init__(
        self,
        session: BridgeSession,
        *,
        input_stream: Optional[BinaryIO] = None,
        output_stream: Optional[BinaryIO] = None,
    ):
        self.session = session
        self._input = input_stream if input_stream is not None else sys.stdin.buffer
        self._output = output_stream if output_stream is not None else sys.stdout.buffer
        self._reader: Optional[threading.Thread] = None

        self.lines_in = 0
        self.lines_out = 0

        session.register(InputLine, self._on_input_line)
        session.register(FrameReceived, self._on_frame)

    # ------------------------------------------------------------------
    # stdin -> transport
    # ------------------------------------------------------------------

    def start_reader(self, loop: asyncio.AbstractEventLoop) -> threading.Thread:
        """
        Start the stdin reader thread feeding ``loop``.

        Must be called on the loop thread: posted events run in a copy of
        the caller's context, so the session id reaches their log records.
        """
        context = contextvars.copy_context()
        self._reader = threading.Thread(
            target=self._pump,
            args=(loop, context),
            name="ws-proxy-stdin",
            daemon=True,
        )
        self._reader.start()
        return self._reader

    def _pump(
        self, loop: asyncio.AbstractEventLoop, context: contextvars.Context
    ) -> None:
        try:
            for raw in iter_lines(chunk_reader(self._input)):
                if not self._post(loop, context, InputLine(normalize_line(raw))):
                    return
        except (OSError, ValueError) as e:
            logger.warning("[Stdio] stdin read failed: %s", e)
        self._post(loop, context, InputClosed())

    def _post(
        self,
        loop: asyncio.AbstractEventLoop,
        context: contextvars.Context,
        event,
    ) -> bool:
        try:
            loop.call_soon_threadsafe(self.session.dispatch, event, context=context)
        except RuntimeError:
            # Loop already closed: the bridge has exited.
            return False
        return True

    def _on_input_line(self, event: InputLine) -> None:
        if not event.line:
            return
        self.lines_in += 1
        try:
            self.session.supervisor.send_line(event.line)
        except QueueOverflowError as e:
            logger.warning("[Stdio] Line dropped: %s", e.message)

    # ------------------------------------------------------------------
    # transport -> stdout
    # ------------------------------------------------------------------

    def _on_frame(self, event: FrameReceived) -> None:
        if not self.session.supervisor.is_current(event.generation):
            return
        self.write_line(decode_frame(event.data))

    def write_line(self, text: str) -> None:
        """Write one relayed line to stdout and flush it."""
        try:
            self._output.write((text + "\n").encode(ENCODING))
            self._output.flush()
        except (BrokenPipeError, ValueError) as e:
            # Consumer is gone; nothing left to relay to.
            logger.warning("[Stdio] stdout closed: %s", e)
            self.session.shutdown.request_shutdown("stdout closed")
            return
        self.lines_out += 1
