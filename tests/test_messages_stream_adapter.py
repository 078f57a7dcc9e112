"""Tests for the chat-completions to Messages stream adapter."""

import json

import pytest

from claude_code_proxy.core.exceptions import UpstreamStreamError
from claude_code_proxy.messages.stream_adapter import (
    ChatToMessagesStreamAdapter,
    StreamState,
    adapt_chat_stream_to_messages,
)
from claude_code_proxy.testing import (
    assert_anthropic_sse_valid,
    build_chat_stream,
    chat_chunk,
    encode_frame,
    parse_sse_events,
    tool_call_chunk,
)

DONE = encode_frame("[DONE]")


async def _aiter(chunks: list[bytes]):
    """Helper to create async iterator from list of bytes."""
    for chunk in chunks:
        yield chunk


def _frames(*events) -> bytes:
    return b"".join(encode_frame(event) for event in events)


def _run(chunks: list[bytes]) -> list[dict]:
    """Feed chunks synchronously and return the parsed event payloads."""
    adapter = ChatToMessagesStreamAdapter("msg_test", "test-model")
    raw = []
    for chunk in chunks:
        raw.extend(adapter.feed(chunk))
    raw.extend(adapter.finish())
    return [event["data"] for event in parse_sse_events(raw)]


def _types(events: list[dict]) -> list[str]:
    return [event["type"] for event in events]


class TestChatToMessagesStreamAdapter:
    """Tests for ChatToMessagesStreamAdapter."""

    @pytest.mark.asyncio
    async def test_simple_text_stream(self):
        stream = _frames(*build_chat_stream("Hi", usage={"prompt_tokens": 5, "completion_tokens": 2})) + DONE
        adapter = ChatToMessagesStreamAdapter("msg_123", "test-model")

        raw = [event async for event in adapter.adapt_stream(_aiter([stream]))]
        parsed = parse_sse_events(raw)
        events = [event["data"] for event in parsed]

        assert [event["event"] for event in parsed] == _types(events)
        assert _types(events) == [
            "message_start",
            "ping",
            "content_block_start",
            "content_block_delta",
            "content_block_delta",
            "content_block_stop",
            "message_delta",
            "message_stop",
        ]
        start = events[0]["message"]
        assert start["id"] == "msg_123"
        assert start["model"] == "test-model"
        assert start["content"] == []
        assert start["usage"] == {"input_tokens": 0, "output_tokens": 0}
        assert events[2]["content_block"] == {"type": "text", "text": ""}
        assert "".join(e["delta"]["text"] for e in events if e["type"] == "content_block_delta") == "Hi"
        assert events[-2]["delta"]["stop_reason"] == "end_turn"
        assert events[-2]["usage"] == {"input_tokens": 5, "output_tokens": 2}
        assert adapter.state is StreamState.CLOSED

    def test_message_start_and_ping_sent_once(self):
        events = _run([_frames(*build_chat_stream("abc")) + DONE])

        assert _types(events).count("message_start") == 1
        assert _types(events).count("ping") == 1
        assert _types(events)[:2] == ["message_start", "ping"]

    def test_tool_call_argument_deltas(self):
        stream = _frames(
            chat_chunk({"role": "assistant"}),
            tool_call_chunk(0, call_id="call_1", name="calc", arguments=""),
            tool_call_chunk(0, arguments='{"x":'),
            tool_call_chunk(0, arguments=""),
            tool_call_chunk(0, arguments="1}"),
            chat_chunk({}, "tool_calls"),
        ) + DONE

        events = _run([stream])

        start = next(e for e in events if e["type"] == "content_block_start")
        assert start["index"] == 0
        assert start["content_block"] == {"type": "tool_use", "id": "call_1", "name": "calc", "input": {}}

        partials = [
            e["delta"]["partial_json"]
            for e in events
            if e["type"] == "content_block_delta" and e["delta"]["type"] == "input_json_delta"
        ]
        assert partials == ['{"x":', "1}"]
        assert "".join(partials) == '{"x":1}'
        assert events[-2]["delta"]["stop_reason"] == "tool_use"

    def test_text_then_two_tool_calls_have_distinct_indices(self):
        stream = _frames(
            chat_chunk({"role": "assistant", "content": "Let me look."}),
            tool_call_chunk(0, call_id="a", name="read", arguments='{"p":1}'),
            tool_call_chunk(1, call_id="b", name="grep", arguments='{"q":2}'),
            chat_chunk({}, "tool_calls"),
        ) + DONE

        events = _run([stream])

        assert_anthropic_sse_valid(events)
        starts = [(e["index"], e["content_block"]["type"]) for e in events if e["type"] == "content_block_start"]
        assert starts == [(0, "text"), (1, "tool_use"), (2, "tool_use")]
        stops = [e["index"] for e in events if e["type"] == "content_block_stop"]
        assert sorted(stops) == [0, 1, 2]
        assert stops[0] == 0  # text closes before the first tool block opens

    def test_block_ordering_per_index(self):
        stream = _frames(
            *build_chat_stream(
                "ok",
                tool_calls=[
                    {"id": "a", "name": "one", "arguments": {"v": 1}},
                    {"id": "b", "name": "two", "arguments": {"v": 2}},
                ],
                finish_reason="tool_calls",
            )
        ) + DONE

        events = _run([stream])

        for index in {e["index"] for e in events if "index" in e}:
            positions = [
                (i, e["type"]) for i, e in enumerate(events) if e.get("index") == index
            ]
            kinds = [kind for _, kind in positions]
            assert kinds[0] == "content_block_start"
            assert kinds[-1] == "content_block_stop"
            assert kinds.count("content_block_stop") == 1
            assert all(kind == "content_block_delta" for kind in kinds[1:-1])
        assert events[-1]["type"] == "message_stop"

    def test_partial_chunks_match_whole_lines(self):
        body = _frames(
            *build_chat_stream(
                "héllo wörld",
                tool_calls=[{"id": "t", "name": "f", "arguments": {"path": "/tmp/ü"}}],
                finish_reason="tool_calls",
                usage={"prompt_tokens": 4, "completion_tokens": 9},
            )
        ) + DONE

        whole = _run([body])
        for size in (1, 3, 7, 64):
            pieces = [body[i : i + size] for i in range(0, len(body), size)]
            assert _run(pieces) == whole, f"chunk size {size} changed the event sequence"

    def test_truncated_line_is_never_parsed(self):
        frame = encode_frame(chat_chunk({"content": "split"}))
        adapter = ChatToMessagesStreamAdapter("msg_x", "m")

        first = list(adapter.feed(frame[:-5]))
        assert first == []
        rest = parse_sse_events(list(adapter.feed(frame[-5:])))
        assert [e["data"]["type"] for e in rest] == [
            "message_start",
            "ping",
            "content_block_start",
            "content_block_delta",
        ]

    def test_malformed_frame_is_skipped(self):
        stream = (
            encode_frame(chat_chunk({"content": "a"}))
            + b"data: {invalid json\n\n"
            + encode_frame(chat_chunk({"content": "b"}))
            + DONE
        )

        events = _run([stream])

        text = "".join(e["delta"]["text"] for e in events if e["type"] == "content_block_delta")
        assert text == "ab"
        assert events[-1]["type"] == "message_stop"

    @pytest.mark.parametrize(
        "bad_frame",
        [
            {"choices": [{"delta": "garbage"}]},
            {"choices": "garbage"},
            {"choices": [{"delta": {"tool_calls": "garbage"}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": [0], "function": "garbage"}]}}]},
        ],
    )
    @pytest.mark.asyncio
    async def test_misshapen_frame_does_not_abort_stream(self, bad_frame):
        stream = _frames(chat_chunk({"content": "hi"}), bad_frame, chat_chunk({"content": " there"})) + DONE
        adapter = ChatToMessagesStreamAdapter("msg_test", "test-model")

        raw = [event async for event in adapter.adapt_stream(_aiter([stream]))]
        events = [event["data"] for event in parse_sse_events(raw)]

        assert not any(e["type"] == "error" for e in events)
        assert events[-1]["type"] == "message_stop"
        text = "".join(
            e["delta"]["text"]
            for e in events
            if e["type"] == "content_block_delta" and e["delta"]["type"] == "text_delta"
        )
        assert text == "hi there"

    def test_finish_without_content_opens_empty_text_block(self):
        stream = _frames(chat_chunk({}, "stop")) + DONE

        events = _run([stream])

        assert _types(events) == [
            "message_start",
            "ping",
            "content_block_start",
            "content_block_stop",
            "message_delta",
            "message_stop",
        ]
        assert events[2]["content_block"] == {"type": "text", "text": ""}

    def test_done_only_stream_is_well_formed(self):
        events = _run([DONE])

        assert_anthropic_sse_valid(events)
        assert events[-2]["delta"]["stop_reason"] == "end_turn"

    def test_reasoning_delta_uses_text_slot(self):
        stream = _frames(
            chat_chunk({"reasoning_content": "thinking hard"}),
            chat_chunk({"content": "answer"}),
            chat_chunk({}, "stop"),
        ) + DONE

        events = _run([stream])

        deltas = [e for e in events if e["type"] == "content_block_delta"]
        assert deltas[0] == {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "thinking_delta", "thinking": "thinking hard"},
        }
        assert deltas[1]["delta"] == {"type": "text_delta", "text": "answer"}
        assert [e["index"] for e in events if e["type"] == "content_block_start"] == [0]

    def test_usage_last_write_wins(self):
        stream = _frames(
            chat_chunk({"content": "x"}, usage={"prompt_tokens": 1, "completion_tokens": 1}),
            chat_chunk({}, "stop", usage={"prompt_tokens": 10, "completion_tokens": 20}),
        ) + DONE

        events = _run([stream])

        assert events[-2]["usage"] == {"input_tokens": 10, "output_tokens": 20}

    def test_usage_falls_back_to_word_count(self):
        stream = _frames(
            chat_chunk({"reasoning": "two words"}),
            chat_chunk({"content": "three more words"}),
        ) + DONE

        events = _run([stream])

        assert events[-2]["usage"] == {"input_tokens": 0, "output_tokens": 5}

    def test_eof_without_done_still_finalizes(self):
        stream = _frames(chat_chunk({"content": "cut"}))

        events = _run([stream])

        assert_anthropic_sse_valid(events)
        assert events[-1]["type"] == "message_stop"

    def test_residual_line_without_newline_is_flushed_at_eof(self):
        stream = b'data: {"choices":[{"delta":{"content":"tail"}}]}'

        events = _run([stream])

        text = "".join(e["delta"]["text"] for e in events if e["type"] == "content_block_delta")
        assert text == "tail"
        assert events[-1]["type"] == "message_stop"

    def test_nothing_after_done(self):
        stream = _frames(chat_chunk({"content": "a"})) + DONE + _frames(chat_chunk({"content": "late"}))

        events = _run([stream])

        assert events[-1]["type"] == "message_stop"
        assert all(e.get("delta", {}).get("text") != "late" for e in events)

    def test_error_frame_raises_from_feed(self):
        adapter = ChatToMessagesStreamAdapter("msg_x", "m")
        frame = encode_frame({"error": {"message": "overloaded", "type": "server_error"}})

        with pytest.raises(UpstreamStreamError, match="overloaded"):
            list(adapter.feed(frame))
        assert adapter.state is StreamState.CLOSED

    @pytest.mark.asyncio
    async def test_error_frame_ends_stream_with_error_event(self):
        chunks = [
            encode_frame(chat_chunk({"content": "partial"})),
            encode_frame({"type": "error", "error": {"message": "rate limited"}}),
            encode_frame(chat_chunk({"content": "never"})),
            DONE,
        ]
        adapter = ChatToMessagesStreamAdapter("msg_x", "m")

        raw = [event async for event in adapter.adapt_stream(_aiter(chunks))]
        events = [event["data"] for event in parse_sse_events(raw)]

        assert events[-1] == {"type": "error", "error": {"type": "api_error", "message": "rate limited"}}
        after_error = _types(events)[_types(events).index("content_block_delta") + 1 :]
        assert after_error == ["error"]

    @pytest.mark.asyncio
    async def test_reader_failure_becomes_error_event(self):
        async def failing():
            yield encode_frame(chat_chunk({"content": "a"}))
            raise ConnectionResetError("peer reset")

        raw = [event async for event in adapt_chat_stream_to_messages("msg_x", "m", failing())]
        events = [event["data"] for event in parse_sse_events(raw)]

        assert events[-1]["type"] == "error"
        assert "peer reset" in events[-1]["error"]["message"]

    def test_tool_call_without_id_gets_generated_id(self):
        stream = _frames(tool_call_chunk(0, name="f", arguments="{}")) + DONE

        events = _run([stream])

        block = next(e for e in events if e["type"] == "content_block_start")["content_block"]
        assert block["id"].startswith("toolu_")

    def test_text_after_tool_call_gets_next_index(self):
        stream = _frames(
            tool_call_chunk(0, call_id="a", name="f", arguments="{}"),
            chat_chunk({"content": "after"}),
        ) + DONE

        events = _run([stream])

        assert_anthropic_sse_valid(events)
        starts = [(e["index"], e["content_block"]["type"]) for e in events if e["type"] == "content_block_start"]
        assert starts == [(0, "tool_use"), (1, "text")]

    def test_sse_framing(self):
        adapter = ChatToMessagesStreamAdapter("msg_x", "m")

        raw = b"".join(adapter.feed(_frames(chat_chunk({"content": "x"}))))

        first = raw.split(b"\n\n")[0].decode("utf-8")
        assert first.startswith("event: message_start\ndata: ")
        assert json.loads(first.split("data: ", 1)[1])["type"] == "message_start"
