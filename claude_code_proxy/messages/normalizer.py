"""Message list conversion between the flat-role and block-content shapes.

Chat completions keeps everything in flat messages: a ``system`` role, a
``tool`` role for results, and ``tool_calls`` next to the assistant text.
Messages keeps one top-level ``system`` string and expresses tool traffic as
``tool_use`` / ``tool_result`` content blocks inside user and assistant turns.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Mapping, MutableMapping, Optional

from .types import (
    ChatMessage,
    ChatToolCall,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UnknownBlock,
    parse_content,
    parse_tool_arguments,
)

logger = logging.getLogger("claude-code-proxy")

SYSTEM_SEPARATOR = "\n\n"


def _content_text(content: Any) -> str:
    """Plain text of a flat message content (string or list of text parts)."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, Mapping) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return str(content)


def coerce_system(system: Any) -> str:
    """Collapse any accepted ``system`` shape into a single string.

    Strings are returned as-is. Lists of strings or text items are joined with
    blank lines. A single text object yields its text. Anything else falls back
    to its JSON representation.
    """
    if system is None:
        return ""
    if isinstance(system, str):
        return system
    if isinstance(system, list):
        parts = []
        for item in system:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, Mapping) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(item, Mapping) and isinstance(item.get("content"), str):
                parts.append(item["content"])
            else:
                parts.append(json.dumps(item, ensure_ascii=False))
        return SYSTEM_SEPARATOR.join(parts)
    if isinstance(system, Mapping):
        if isinstance(system.get("text"), str):
            return system["text"]
        if isinstance(system.get("content"), str):
            return system["content"]
    return json.dumps(system, ensure_ascii=False)


# =============================================================================
# Flat roles -> content blocks
# =============================================================================


def _tool_use_from_call(call: Any) -> Optional[dict[str, Any]]:
    if not isinstance(call, Mapping):
        return None
    function = call.get("function")
    if not isinstance(function, Mapping):
        function = call
    return ToolUseBlock(
        id=str(call.get("id") or f"call_{uuid.uuid4().hex[:8]}"),
        name=str(function.get("name") or ""),
        input=parse_tool_arguments(function.get("arguments")),
    ).to_dict()


def _assistant_to_blocks(message: Mapping[str, Any]) -> dict[str, Any]:
    calls = list(message.get("tool_calls") or [])
    if message.get("function_call"):
        calls.append(message["function_call"])

    content: list[dict[str, Any]] = []
    text = _content_text(message.get("content"))
    if text:
        content.append(TextBlock(text=text).to_dict())
    for call in calls:
        block = _tool_use_from_call(call)
        if block is not None:
            content.append(block)
    return {"role": "assistant", "content": content}


def _tool_result_message(tool_use_id: Any, content: Any) -> dict[str, Any]:
    block = ToolResultBlock(tool_use_id=str(tool_use_id or ""), content=content)
    return {"role": "user", "content": [block.to_dict()]}


def normalize_messages(request: MutableMapping[str, Any]) -> None:
    """Rewrite ``request["messages"]`` into block-content shape in place.

    ``system`` role entries are removed and merged into ``request["system"]``.
    Messages already in block shape pass through untouched.
    """
    messages = request.get("messages")
    if not isinstance(messages, list):
        return

    system_parts: list[str] = []
    existing_system = coerce_system(request.get("system"))
    if existing_system:
        system_parts.append(existing_system)

    normalized: list[Any] = []
    for message in messages:
        if not isinstance(message, Mapping):
            logger.warning("Dropping non-object message: %r", message)
            continue

        role = message.get("role")
        if role == "system":
            text = _content_text(message.get("content"))
            if text:
                system_parts.append(text)
        elif role == "tool":
            normalized.append(_tool_result_message(message.get("tool_call_id"), message.get("content")))
        elif role == "function":
            normalized.append(
                _tool_result_message(
                    message.get("tool_call_id") or message.get("name"),
                    message.get("content"),
                )
            )
        elif role == "assistant" and (message.get("tool_calls") or message.get("function_call")):
            normalized.append(_assistant_to_blocks(message))
        else:
            normalized.append(message)

    if system_parts:
        request["system"] = SYSTEM_SEPARATOR.join(system_parts)
    request["messages"] = normalized


# =============================================================================
# Content blocks -> flat roles
# =============================================================================


def _tool_call_from_block(block: ToolUseBlock) -> ChatToolCall:
    arguments = block.input if isinstance(block.input, str) else json.dumps(block.input, ensure_ascii=False)
    return {
        "id": block.id or f"call_{uuid.uuid4().hex[:8]}",
        "type": "function",
        "function": {"name": block.name, "arguments": arguments},
    }


def _tool_message(block: ToolResultBlock) -> ChatMessage:
    text = block.content_as_text()
    if block.is_error:
        text = f"[Error] {text}"
    return {"role": "tool", "tool_call_id": block.tool_use_id, "content": text}


def _convert_message(role: str, content: Any) -> list[ChatMessage]:
    if isinstance(content, str):
        return [{"role": role, "content": content}]

    texts: list[str] = []
    tool_calls: list[ChatToolCall] = []
    tool_messages: list[ChatMessage] = []

    for block in parse_content(content):
        if isinstance(block, TextBlock):
            texts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            tool_calls.append(_tool_call_from_block(block))
        elif isinstance(block, ToolResultBlock):
            tool_messages.append(_tool_message(block))
        elif isinstance(block, UnknownBlock):
            logger.debug("Dropping %s block during translation", block.block_type or "untyped")

    converted: list[ChatMessage] = []
    if role == "assistant":
        if texts or tool_calls:
            message: ChatMessage = {"role": "assistant"}
            # Chat completions wants an explicit null next to bare tool calls
            message["content"] = " ".join(texts) if texts else None
            if tool_calls:
                message["tool_calls"] = tool_calls
            converted.append(message)
        converted.extend(tool_messages)
        return converted

    # Tool outputs go first: the user text in the same turn reacts to them.
    converted.extend(tool_messages)
    if texts:
        converted.append({"role": role, "content": " ".join(texts)})
    return converted


def to_openai_messages(system: Any, messages: Any) -> list[ChatMessage]:
    """Build the chat-completions message list from a block-shaped request."""
    result: list[ChatMessage] = []

    system_text = coerce_system(system)
    if system_text:
        result.append({"role": "system", "content": system_text})

    if not isinstance(messages, list):
        return result

    for message in messages:
        if not isinstance(message, Mapping):
            logger.warning("Dropping non-object message: %r", message)
            continue
        role = message.get("role")
        if role not in ("user", "assistant"):
            logger.warning("Dropping message with unsupported role %r", role)
            continue
        result.extend(_convert_message(role, message.get("content")))
    return result
