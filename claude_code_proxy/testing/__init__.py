"""Testing utilities for in-process proxy simulations."""

from .assertions import (
    assert_anthropic_message_valid,
    assert_anthropic_sse_valid,
    parse_sse_events,
)
from .fake_upstream import (
    FakeUpstream,
    UpstreamResponse,
    build_chat_completion,
    build_chat_stream,
    chat_chunk,
    encode_frame,
    tool_call_chunk,
)

__all__ = [
    "FakeUpstream",
    "UpstreamResponse",
    "assert_anthropic_message_valid",
    "assert_anthropic_sse_valid",
    "build_chat_completion",
    "build_chat_stream",
    "chat_chunk",
    "encode_frame",
    "parse_sse_events",
    "tool_call_chunk",
]
