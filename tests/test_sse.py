"""Tests for SSE utilities."""

import json

from claude_code_proxy.core.sse import SSELineBuffer, detect_frame_error, format_sse_event


class TestSSELineBuffer:
    """Tests for SSELineBuffer."""

    def test_complete_lines(self):
        buffer = SSELineBuffer()

        assert buffer.feed(b'data: {"a":1}\n\ndata: [DONE]\n\n') == ['{"a":1}', "[DONE]"]

    def test_split_line_is_held_back(self):
        buffer = SSELineBuffer()

        assert buffer.feed(b'data: {"a"') == []
        assert buffer.feed(b":1}\n") == ['{"a":1}']

    def test_split_multibyte_character(self):
        buffer = SSELineBuffer()
        encoded = 'data: "ü"\n'.encode("utf-8")
        split_at = encoded.index(b"\xc3") + 1

        assert buffer.feed(encoded[:split_at]) == []
        assert buffer.feed(encoded[split_at:]) == ['"ü"']

    def test_non_data_lines_are_ignored(self):
        buffer = SSELineBuffer()

        assert buffer.feed(b": keep-alive\nevent: x\nid: 3\ndata: y\n") == ["y"]

    def test_crlf_lines(self):
        buffer = SSELineBuffer()

        assert buffer.feed(b"data: 1\r\n\r\ndata: 2\r\n") == ["1", "2"]

    def test_flush_returns_unterminated_tail(self):
        buffer = SSELineBuffer()
        buffer.feed(b"data: last")

        assert buffer.flush() == ["last"]
        assert buffer.flush() == []


class TestFormatSSEEvent:
    """Tests for format_sse_event."""

    def test_format(self):
        raw = format_sse_event("ping", {"type": "ping"})

        assert raw == b'event: ping\ndata: {"type": "ping"}\n\n'

    def test_unicode_is_not_escaped(self):
        raw = format_sse_event("x", {"text": "héllo"})

        assert "héllo".encode("utf-8") in raw
        assert json.loads(raw.decode("utf-8").split("data: ", 1)[1]) == {"text": "héllo"}


class TestDetectFrameError:
    """Tests for detect_frame_error."""

    def test_generic_error_object(self):
        assert detect_frame_error({"error": {"message": "bad"}}) == {"message": "bad"}

    def test_typed_error_event(self):
        assert detect_frame_error({"type": "error", "error": {"message": "x"}}) == {"message": "x"}

    def test_typed_error_without_body(self):
        assert detect_frame_error({"type": "error"}) == "unknown error"

    def test_regular_chunk(self):
        assert detect_frame_error({"choices": []}) is None
        assert detect_frame_error({"choices": [], "error": None}) is None

    def test_non_object(self):
        assert detect_frame_error([1, 2]) is None
