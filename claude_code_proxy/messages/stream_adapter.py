"""Stream adapter for converting OpenAI Chat Completions SSE to Anthropic Messages SSE.

Converts the OpenAI chat completion streaming format to Anthropic Messages
streaming format with proper event types and lifecycle events.

OpenAI Chat Completion Events:
    data: {"choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop","index":0}]}
    data: [DONE]

Anthropic Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: ping
    data: {"type":"ping"}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{...}}

    event: message_stop
    data: {"type":"message_stop"}
"""

import json
import logging
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Iterator, Optional

from ..core.exceptions import UpstreamStreamError, embedded_error_message
from ..core.sse import DONE_SENTINEL, SSELineBuffer, detect_frame_error, format_sse_event

logger = logging.getLogger("claude-code-proxy")


class StreamState(str, Enum):
    AWAITING_FIRST_EVENT = "awaiting_first_event"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class ChatToMessagesStreamAdapter:
    """Converts OpenAI chat completion SSE stream to Anthropic Messages SSE events.

    One adapter serves exactly one response stream. It keeps:
    - the residual bytes of a frame split across chunks
    - which content blocks are open, numbered in the order they were opened
    - accumulated text, reasoning and per-call tool arguments
    - the last usage counts seen on any frame

    ``feed`` and ``finish`` are synchronous generators so they can be driven
    directly in tests; ``adapt_stream`` wraps them around an async byte
    iterator and turns failures into a terminal ``error`` event.
    """

    def __init__(self, message_id: str, model: str):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx")
            model: Model name for the response
        """
        self.message_id = message_id
        self.model = model
        self.state = StreamState.AWAITING_FIRST_EVENT

        self._buffer = SSELineBuffer()
        self._next_index = 0
        self._open_blocks: set[int] = set()

        # Text block tracking
        self.text_index: Optional[int] = None
        self.accumulated_text = ""
        self.accumulated_reasoning = ""

        # Tool call tracking (by OpenAI tool_call index)
        self.tool_calls: dict[int, dict[str, Any]] = {}

        self.usage: Optional[dict[str, Any]] = None
        self.finish_reason: Optional[str] = None

    @property
    def saw_tool_call(self) -> bool:
        return bool(self.tool_calls)

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    async def adapt_stream(
        self,
        chat_stream: AsyncIterator[bytes],
    ) -> AsyncIterator[bytes]:
        """Transform OpenAI chat completion stream to Anthropic Messages SSE events.

        Reading stops as soon as the terminal events have been produced. An
        error frame or a failure while reading ends the stream with a single
        ``error`` event.

        Args:
            chat_stream: The incoming OpenAI chat completion SSE stream

        Yields:
            Anthropic Messages API SSE events as bytes
        """
        try:
            async for chunk in chat_stream:
                for event in self.feed(chunk):
                    yield event
                if self.closed:
                    break
            for event in self.finish():
                yield event
        except UpstreamStreamError as exc:
            logger.error(f"Upstream reported an error mid-stream: {exc.message}")
            yield self._emit_error("api_error", exc.message)
        except Exception as exc:
            logger.exception(f"Error while adapting upstream stream: {exc}")
            self.state = StreamState.CLOSED
            yield self._emit_error("api_error", str(exc) or exc.__class__.__name__)

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        """Process one raw chunk of the upstream byte stream.

        Yields:
            Anthropic Messages SSE events for every frame the chunk completed

        Raises:
            UpstreamStreamError: a frame carried an error object
        """
        if self.closed:
            return
        for payload in self._buffer.feed(chunk):
            yield from self._process_payload(payload)
            if self.closed:
                return

    def finish(self) -> Iterator[bytes]:
        """Drain the residual buffer after upstream EOF and close the stream.

        A stream that ended without the ``[DONE]`` sentinel is finalized the
        same way a terminated one is.
        """
        if self.closed:
            return
        for payload in self._buffer.flush():
            yield from self._process_payload(payload)
            if self.closed:
                return
        logger.warning("Upstream stream ended without [DONE]; finalizing")
        yield from self._finalize()

    def _process_payload(self, payload: str) -> Iterator[bytes]:
        if payload == DONE_SENTINEL:
            yield from self._finalize()
            return

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"MessagesStreamAdapter: Failed to parse: {payload[:100]}")
            return

        error = detect_frame_error(data)
        if error is not None:
            self.state = StreamState.CLOSED
            raise UpstreamStreamError(
                embedded_error_message(error),
                error if isinstance(error, dict) else None,
            )

        if isinstance(data, dict):
            yield from self._process_chat_event(data)

    def _process_chat_event(self, data: dict[str, Any]) -> Iterator[bytes]:
        """Process a parsed OpenAI chat completion event."""
        usage = data.get("usage")
        if isinstance(usage, dict) and usage:
            self.usage = usage

        choices = data.get("choices")
        if not isinstance(choices, list):
            choices = []

        for choice in choices:
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta") or {}
            if not isinstance(delta, dict):
                logger.debug(f"MessagesStreamAdapter: Skipping non-object delta: {delta!r:.100}")
                delta = {}
            finish_reason = choice.get("finish_reason")
            content = delta.get("content")
            reasoning = delta.get("reasoning_content") or delta.get("reasoning")
            tool_calls = delta.get("tool_calls") or []
            if not isinstance(tool_calls, list):
                tool_calls = []

            if not (delta.get("role") or content or reasoning or tool_calls or finish_reason):
                continue

            yield from self._ensure_started()

            if isinstance(reasoning, str) and reasoning:
                yield from self._ensure_text_block()
                self.accumulated_reasoning += reasoning
                yield self._emit_content_block_delta(
                    self.text_index,
                    {"type": "thinking_delta", "thinking": reasoning},
                )

            if isinstance(content, str) and content:
                yield from self._ensure_text_block()
                self.accumulated_text += content
                yield self._emit_content_block_delta(
                    self.text_index,
                    {"type": "text_delta", "text": content},
                )

            for tc in tool_calls:
                yield from self._process_tool_call_delta(tc)

            if finish_reason:
                self.finish_reason = finish_reason
                # Never close a started stream without a single block
                if self._next_index == 0:
                    yield from self._ensure_text_block()

    def _process_tool_call_delta(self, tc: Any) -> Iterator[bytes]:
        """Process an OpenAI tool call delta.

        Only the newly appended argument substring is forwarded; empty
        fragments produce no event.
        """
        if not isinstance(tc, dict):
            return
        tc_index = tc.get("index", 0)
        if not isinstance(tc_index, int):
            tc_index = 0
        function = tc.get("function")
        if not isinstance(function, dict):
            function = {}

        call = self.tool_calls.get(tc_index)
        if call is None:
            # Text and tool_use blocks do not interleave
            yield from self._close_text_block()
            block_index = self._allocate_index()
            call = {
                "id": tc.get("id") or f"toolu_{uuid.uuid4().hex[:12]}",
                "name": function.get("name") or "",
                "arguments": "",
                "block_index": block_index,
            }
            self.tool_calls[tc_index] = call
            yield self._emit_content_block_start(
                block_index,
                {"type": "tool_use", "id": call["id"], "name": call["name"], "input": {}},
            )
        elif function.get("name") and not call["name"]:
            call["name"] = function["name"]

        fragment = function.get("arguments")
        if fragment is None:
            return
        if not isinstance(fragment, str):
            fragment = json.dumps(fragment, ensure_ascii=False)

        sent = len(call["arguments"])
        call["arguments"] += fragment
        if len(call["arguments"]) > sent:
            yield self._emit_content_block_delta(
                call["block_index"],
                {"type": "input_json_delta", "partial_json": call["arguments"][sent:]},
            )

    def _allocate_index(self) -> int:
        index = self._next_index
        self._next_index += 1
        self._open_blocks.add(index)
        return index

    def _ensure_started(self) -> Iterator[bytes]:
        if self.state is StreamState.AWAITING_FIRST_EVENT:
            self.state = StreamState.STREAMING
            yield self._emit_message_start()
            yield self._format_sse_event("ping", {"type": "ping"})

    def _ensure_text_block(self) -> Iterator[bytes]:
        if self.text_index is None:
            self.text_index = self._allocate_index()
            yield self._emit_content_block_start(self.text_index, {"type": "text", "text": ""})

    def _close_text_block(self) -> Iterator[bytes]:
        if self.text_index is not None:
            yield self._close_block(self.text_index)
            self.text_index = None

    def _close_block(self, index: int) -> bytes:
        self._open_blocks.discard(index)
        return self._emit_content_block_stop(index)

    def _finalize(self) -> Iterator[bytes]:
        """Emit the terminal events for the stream."""
        yield from self._ensure_started()
        self.state = StreamState.FINALIZING

        if self._next_index == 0:
            yield from self._ensure_text_block()

        for index in sorted(self._open_blocks):
            yield self._close_block(index)
        self.text_index = None

        stop_reason = "tool_use" if self.saw_tool_call else "end_turn"
        yield self._emit_message_delta(stop_reason)
        yield self._emit_message_stop()
        self.state = StreamState.CLOSED

    def final_usage(self) -> dict[str, int]:
        """Usage for the closing message_delta.

        Falls back to a word count of the generated text when upstream never
        reported usage.
        """
        if self.usage:
            return {
                "input_tokens": self.usage.get("prompt_tokens") or 0,
                "output_tokens": self.usage.get("completion_tokens") or 0,
            }
        generated = f"{self.accumulated_text} {self.accumulated_reasoning}"
        return {"input_tokens": 0, "output_tokens": len(generated.split())}

    def _emit_message_start(self) -> bytes:
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        }
        return self._format_sse_event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_start",
            "index": index,
            "content_block": content_block,
        }
        return self._format_sse_event("content_block_start", event_data)

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_delta",
            "index": index,
            "delta": delta,
        }
        return self._format_sse_event("content_block_delta", event_data)

    def _emit_content_block_stop(self, index: int) -> bytes:
        return self._format_sse_event("content_block_stop", {"type": "content_block_stop", "index": index})

    def _emit_message_delta(self, stop_reason: str) -> bytes:
        event_data = {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": self.final_usage(),
        }
        return self._format_sse_event("message_delta", event_data)

    def _emit_message_stop(self) -> bytes:
        return self._format_sse_event("message_stop", {"type": "message_stop"})

    def _emit_error(self, error_type: str, message: str) -> bytes:
        event_data = {"type": "error", "error": {"type": error_type, "message": message}}
        return self._format_sse_event("error", event_data)

    def _format_sse_event(self, event_type: str, data: dict[str, Any]) -> bytes:
        return format_sse_event(event_type, data)


async def adapt_chat_stream_to_messages(
    message_id: str,
    model: str,
    chat_stream: AsyncIterator[bytes],
) -> AsyncIterator[bytes]:
    """Convenience function to adapt an OpenAI chat stream to Anthropic Messages.

    Args:
        message_id: Message ID for the response
        model: Model name
        chat_stream: Input OpenAI chat completion stream

    Yields:
        Anthropic Messages API SSE events
    """
    adapter = ChatToMessagesStreamAdapter(message_id, model)
    async for event in adapter.adapt_stream(chat_stream):
        yield event
