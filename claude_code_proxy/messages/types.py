"""Content block variants for the Messages wire format.

A message's ``content`` is either a plain string or an ordered list of typed
blocks. Blocks are parsed into one of the dataclasses below so that callers
dispatch on the Python type rather than poking at dictionaries. Anything that
is not a recognized block is kept verbatim as :class:`UnknownBlock`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from typing_extensions import TypedDict

logger = logging.getLogger("claude-code-proxy")


@dataclass
class TextBlock:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: Any = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: Any = ""
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            result["is_error"] = True
        return result

    def content_as_text(self) -> str:
        """Flatten the result content into a single string."""
        content = self.content
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts = []
            for item in content:
                if isinstance(item, Mapping) and item.get("type") == "text":
                    parts.append(str(item.get("text", "")))
                elif isinstance(item, str):
                    parts.append(item)
            return "\n".join(parts)
        return json.dumps(content, ensure_ascii=False)


@dataclass
class UnknownBlock:
    """A block of a type this proxy does not translate (image, thinking, ...)."""

    raw: Any

    @property
    def block_type(self) -> str:
        if isinstance(self.raw, Mapping):
            return str(self.raw.get("type", ""))
        return type(self.raw).__name__

    def to_dict(self) -> Any:
        return self.raw


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, UnknownBlock]


def parse_content_block(raw: Any) -> ContentBlock:
    """Parse one raw block into its variant."""
    if not isinstance(raw, Mapping):
        return UnknownBlock(raw)

    block_type = raw.get("type")
    if block_type == "text":
        return TextBlock(text=str(raw.get("text") or ""))
    if block_type == "tool_use":
        return ToolUseBlock(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            input=raw.get("input") if raw.get("input") is not None else {},
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(raw.get("tool_use_id") or ""),
            content=raw.get("content", ""),
            is_error=bool(raw.get("is_error", False)),
        )
    return UnknownBlock(raw)


def parse_content(content: Any) -> list[ContentBlock]:
    """Parse a message ``content`` value into a list of blocks.

    A plain string becomes a single text block; ``None`` becomes an empty list.
    """
    if content is None:
        return []
    if isinstance(content, str):
        return [TextBlock(text=content)]
    if isinstance(content, list):
        return [parse_content_block(item) for item in content]
    logger.debug("Unexpected message content type: %s", type(content).__name__)
    return [UnknownBlock(content)]


def parse_tool_arguments(arguments: Any) -> Any:
    """Turn a function-call ``arguments`` value into a tool ``input`` object.

    Strings are parsed as JSON, objects are used as-is. An empty string yields
    an empty object; text that is not JSON is wrapped as ``{"raw": text}``.
    """
    if arguments is None:
        return {}
    if not isinstance(arguments, str):
        return arguments
    if not arguments.strip():
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON, passing raw text")
        return {"raw": arguments}


# =============================================================================
# Chat-completions wire types
# =============================================================================


class ChatFunctionCall(TypedDict, total=False):
    name: str
    arguments: str


class ChatToolCall(TypedDict, total=False):
    """A tool call on an outbound assistant message."""

    id: str
    type: str
    function: ChatFunctionCall


class ChatMessage(TypedDict, total=False):
    """One entry of the outbound ``messages`` array.

    ``content`` is explicitly ``None`` on assistant messages that carry only
    tool calls.
    """

    role: str
    content: str | None
    tool_calls: list[ChatToolCall]
    tool_call_id: str


class ChatFunction(TypedDict, total=False):
    name: str
    description: str
    parameters: dict[str, Any]


class ChatTool(TypedDict):
    type: str
    function: ChatFunction


class MessageUsage(TypedDict):
    input_tokens: int
    output_tokens: int


class MessageResponse(TypedDict):
    """A complete (non-streaming) Messages API response body."""

    id: str
    type: str
    role: str
    model: str
    content: list[dict[str, Any]]
    stop_reason: str
    stop_sequence: str | None
    usage: MessageUsage
