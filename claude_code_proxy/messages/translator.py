"""Anthropic Messages <-> OpenAI Chat Completions translation.

Requests arrive in Messages format, possibly carrying chat-completions habits
(``system`` role entries, ``tool`` role results, ``functions``, ``stop``,
``user``). They are first normalized into a canonical Messages request, then
rendered as a chat-completions request for the upstream.

Key mappings:
- Messages system (top-level string) -> leading system message
- tool_use / tool_result blocks -> tool_calls / tool role messages
- Messages tools -> OpenAI function tools
- Messages tool_choice -> OpenAI tool_choice
- thinking flag -> reasoning or completion model route

Responses travel the other way: one chat completion becomes one Messages
response with text and tool_use blocks.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..core.exceptions import InvalidRequestError, UpstreamResponseError, embedded_error_message
from .normalizer import normalize_messages, to_openai_messages
from .sanitizer import sanitize_root
from .tools import map_function_call, map_tools, to_openai_tool_choice, to_openai_tools
from .types import MessageResponse, TextBlock, ToolUseBlock, parse_tool_arguments

if TYPE_CHECKING:
    from ..settings import ModelRoute, ProxySettings

logger = logging.getLogger("claude-code-proxy")

DEFAULT_TEMPERATURE = 1

# Messages-only parameters with no chat-completions counterpart.
MESSAGES_ONLY_KEYS = ("top_k",)

_STOP_REASONS = {
    "tool_calls": "tool_use",
    "stop": "end_turn",
    "length": "max_tokens",
}


@dataclass
class TranslatedRequest:
    """Upstream request body plus what the caller needs to know about it."""

    body: dict[str, Any]
    route: "ModelRoute"
    dropped_params: list[str] = field(default_factory=list)

    @property
    def model(self) -> str:
        return self.body["model"]

    @property
    def stream(self) -> bool:
        return bool(self.body.get("stream"))


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def message_id_from(upstream_id: Any) -> str:
    """Rewrite a completion id (``chatcmpl-...``) into a message id."""
    if not isinstance(upstream_id, str) or not upstream_id:
        return new_message_id()
    if upstream_id.startswith("chatcmpl"):
        suffix = upstream_id[len("chatcmpl"):].lstrip("-_")
        return f"msg_{suffix}" if suffix else new_message_id()
    if upstream_id.startswith("msg_"):
        return upstream_id
    return f"msg_{upstream_id}"


def map_stop_reason(finish_reason: Optional[str]) -> str:
    """Convert an OpenAI finish_reason to an Anthropic stop_reason.

    Unknown or missing values fall back to ``end_turn``.
    """
    return _STOP_REASONS.get(finish_reason or "", "end_turn")


def normalize_request(payload: Mapping[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Bring an inbound request into canonical Messages shape.

    Works on a deep copy; the caller's payload is never mutated.

    Returns:
        Tuple of (normalized request, dropped parameter names)
    """
    request = copy.deepcopy(dict(payload))
    dropped = sanitize_root(request)
    map_tools(request)
    map_function_call(request)
    normalize_messages(request)
    return request, dropped


def messages_to_chat_completions(
    payload: Mapping[str, Any],
    settings: "ProxySettings",
) -> TranslatedRequest:
    """Translate an Anthropic Messages request to an OpenAI Chat Completions request.

    Args:
        payload: Messages API request body, as received
        settings: Resolved proxy settings (models, overrides, dialect)

    Returns:
        TranslatedRequest with the upstream body, the chosen model route and
        the names of parameters that could not be forwarded.

    Raises:
        InvalidRequestError: ``messages`` is missing or not a list
    """
    if not isinstance(payload.get("messages"), list):
        raise InvalidRequestError("messages: field required and must be a list", code="invalid_messages")

    request, dropped = normalize_request(payload)
    route = settings.route(payload.get("thinking"))

    body: dict[str, Any] = {
        "model": route.model,
        "messages": to_openai_messages(request.get("system"), request.get("messages")),
        "temperature": request.get("temperature") if request.get("temperature") is not None else DEFAULT_TEMPERATURE,
        "stream": request.get("stream") is True,
    }

    max_tokens = route.max_tokens or request.get("max_tokens")
    if max_tokens is not None:
        body[route.max_tokens_field] = max_tokens

    if route.reasoning and route.reasoning_effort:
        body["reasoning_effort"] = route.reasoning_effort

    if request.get("stop_sequences"):
        body["stop"] = request["stop_sequences"]
    if request.get("top_p") is not None:
        body["top_p"] = request["top_p"]

    tools = to_openai_tools(request.get("tools"))
    if tools:
        body["tools"] = tools

    tool_choice = to_openai_tool_choice(request.get("tool_choice"))
    if tool_choice is not None:
        body["tool_choice"] = tool_choice

    for key in MESSAGES_ONLY_KEYS:
        if key in request:
            logger.debug(f"{key}={request[key]} is not supported upstream, ignoring")
            dropped.append(key)

    return TranslatedRequest(body=body, route=route, dropped_params=dropped)


def _text_of(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(part.get("text") or "")
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        )
    return ""


def chat_completion_to_messages(
    payload: Mapping[str, Any],
    model: Optional[str] = None,
) -> MessageResponse:
    """Translate an OpenAI Chat Completions response to an Anthropic message.

    Args:
        payload: Chat completion response body
        model: Model name to report; defaults to the upstream's

    Raises:
        UpstreamResponseError: the body carries an embedded error object
    """
    if payload.get("error"):
        raise UpstreamResponseError(embedded_error_message(payload["error"]), payload["error"])

    choices = payload.get("choices") or []
    choice = choices[0] if choices and isinstance(choices[0], Mapping) else {}
    message = choice.get("message") or {}

    content: list[dict[str, Any]] = []
    text = _text_of(message.get("content"))
    if text:
        content.append(TextBlock(text=text).to_dict())

    calls = list(message.get("tool_calls") or [])
    if message.get("function_call"):
        calls.append({"function": message["function_call"]})
    for call in calls:
        if not isinstance(call, Mapping):
            continue
        function = call.get("function") or {}
        content.append(
            ToolUseBlock(
                id=call.get("id") or f"toolu_{uuid.uuid4().hex[:12]}",
                name=function.get("name") or "",
                input=parse_tool_arguments(function.get("arguments")),
            ).to_dict()
        )

    usage = payload.get("usage") or {}
    return {
        "id": message_id_from(payload.get("id")),
        "type": "message",
        "role": "assistant",
        "model": model or payload.get("model", ""),
        "content": content,
        "stop_reason": map_stop_reason(choice.get("finish_reason")),
        "stop_sequence": None,
        "usage": {
            "input_tokens": usage.get("prompt_tokens") or 0,
            "output_tokens": usage.get("completion_tokens") or 0,
        },
    }
