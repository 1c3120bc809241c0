"""
Frame Codec

Converts WebSocket payloads to the UTF-8 text written to stdout, and
outbound lines to text frames. One decode path covers text frames, binary
frames, fragmented binary (a sequence of chunks, joined before decoding so
multi-byte characters split across fragments survive) and typed byte views
such as memoryview or array.array.
"""

from __future__ import annotations

from typing import Any, Iterable

ENCODING = "utf-8"


def _to_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, bytes):
        return chunk
    if isinstance(chunk, str):
        return chunk.encode(ENCODING)
    # bytearray, memoryview (any layout, including strided), array.array, ...
    return memoryview(chunk).tobytes()


def _is_fragment_sequence(data: Any) -> bool:
    return isinstance(data, (list, tuple))


def decode_frame(data: Any) -> str:
    """
    Decode one inbound frame to text.

    Args:
        data: str, bytes-like object, or list/tuple of bytes-like fragments

    Returns:
        Decoded string (invalid UTF-8 sequences are replaced, never raised)
    """
    if isinstance(data, str):
        return data
    if _is_fragment_sequence(data):
        return join_fragments(data).decode(ENCODING, errors="replace")
    try:
        return _to_bytes(data).decode(ENCODING, errors="replace")
    except TypeError:
        # Not a buffer at all
        return str(data)


def join_fragments(fragments: Iterable[Any]) -> bytes:
    """Concatenate binary fragments into one payload."""
    return b"".join(_to_bytes(chunk) for chunk in fragments)


def encode_line(line: str) -> str:
    """Outbound lines are sent unchanged as text frames."""
    return line
