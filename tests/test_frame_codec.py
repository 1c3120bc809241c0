"""
Tests for the Frame Codec.
"""

import array

from wsbridge.realtime.frame_codec import decode_frame, encode_line, join_fragments


class TestDecodeFrame:
    """decode_frame() over every payload shape the transport can deliver."""

    def test_text_frame_unchanged(self):
        assert decode_frame("ping-check") == "ping-check"

    def test_binary_frame(self):
        assert decode_frame('{"id":1}'.encode("utf-8")) == '{"id":1}'

    def test_bytearray(self):
        assert decode_frame(bytearray(b"hello")) == "hello"

    def test_memoryview_slice(self):
        """Typed views decode only their own window of the buffer."""
        view = memoryview(b"xxhello-worldyy")[2:13]
        assert decode_frame(view) == "hello-world"

    def test_strided_memoryview(self):
        assert decode_frame(memoryview(b"hxexlxlxo")[::2]) == "hello"

    def test_strided_view_inside_fragments(self):
        assert decode_frame([b"he", memoryview(b"lxlxo")[::2]]) == "hello"

    def test_array_view(self):
        assert decode_frame(array.array("B", b"abc")) == "abc"

    def test_fragments_joined_before_decode(self):
        """A multi-byte character split across fragments survives."""
        payload = "café ✓".encode("utf-8")
        fragments = [payload[:4], payload[4:7], payload[7:]]
        assert decode_frame(fragments) == "café ✓"

    def test_fragment_tuple_of_mixed_buffers(self):
        fragments = (b"ab", bytearray(b"cd"), memoryview(b"ef"))
        assert decode_frame(fragments) == "abcdef"

    def test_invalid_utf8_replaced(self):
        assert decode_frame(b"ok\xff") == "ok�"

    def test_unknown_object_stringified(self):
        assert decode_frame(42) == "42"

    def test_empty_binary(self):
        assert decode_frame(b"") == ""


class TestHelpers:
    def test_join_fragments(self):
        assert join_fragments([b"a", b"b", b"c"]) == b"abc"

    def test_encode_line_is_identity(self):
        line = '{"method":"turn/start"}'
        assert encode_line(line) is line
