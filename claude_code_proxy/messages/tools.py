"""Tool declaration and tool choice mapping.

Messages format (flat):
    {"name": "...", "description": "...", "input_schema": {...}}
    tool_choice: {"type": "auto" | "any" | "none"} | {"type": "tool", "name": "..."}

Chat completions format (nested):
    {"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}
    tool_choice: "auto" | "none" | "required" | {"type": "function", "function": {"name": "..."}}
    legacy: functions=[{...}], function_call="auto" | "none" | {"name": "..."}
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Optional

from .types import ChatFunction, ChatTool

logger = logging.getLogger("claude-code-proxy")

# Synthetic tools that upstream chat-completions providers reject.
EXCLUDED_TOOL_NAMES = frozenset({"BatchTool"})

_SCHEMA_COMBINATORS = ("anyOf", "allOf", "oneOf")


def remove_uri_format(schema: Any) -> Any:
    """Return a copy of a JSON schema with ``format: "uri"`` removed.

    Only string-typed nodes lose their format. Recursion follows
    ``properties``, ``items``, ``additionalProperties`` and the
    ``anyOf``/``allOf``/``oneOf`` combinators, as well as any other nested
    object. Leaves are returned unchanged, and the input is never mutated.
    """
    if isinstance(schema, list):
        return [remove_uri_format(item) for item in schema]
    if not isinstance(schema, Mapping):
        return schema

    if schema.get("type") == "string" and schema.get("format") == "uri":
        return {key: remove_uri_format(value) for key, value in schema.items() if key != "format"}

    result: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "properties" and isinstance(value, Mapping):
            result[key] = {name: remove_uri_format(prop) for name, prop in value.items()}
        elif key in _SCHEMA_COMBINATORS and isinstance(value, list):
            result[key] = [remove_uri_format(item) for item in value]
        else:
            # items, additionalProperties, $defs and anything else nested
            result[key] = remove_uri_format(value)
    return result


def _canonical_tool(tool: Any) -> Optional[dict[str, Any]]:
    """Normalize a declaration in either nesting into the flat form."""
    if not isinstance(tool, Mapping):
        logger.warning("Skipping malformed tool declaration: %r", tool)
        return None

    function = tool.get("function")
    if isinstance(function, Mapping):
        name = function.get("name")
        description = function.get("description")
        schema = function.get("parameters")
    else:
        name = tool.get("name")
        description = tool.get("description")
        schema = tool.get("input_schema", tool.get("parameters"))

    declaration: dict[str, Any] = {"name": name}
    if description is not None:
        declaration["description"] = description
    declaration["input_schema"] = remove_uri_format(schema) if schema is not None else {"type": "object"}
    return declaration


def map_tools(request: MutableMapping[str, Any]) -> None:
    """Merge ``tools`` and legacy ``functions`` into flat declarations in place."""
    raw_tools = request.get("tools") or []
    raw_functions = request.pop("functions", None) or []
    if not isinstance(raw_tools, list):
        raw_tools = []
    if not isinstance(raw_functions, list):
        raw_functions = []

    combined = list(raw_tools) + [
        {"type": "function", "function": fn} for fn in raw_functions
    ]
    declarations = [decl for decl in map(_canonical_tool, combined) if decl is not None]

    if declarations:
        request["tools"] = declarations
    else:
        request.pop("tools", None)


def _choice_from_openai(choice: Any) -> Optional[dict[str, Any]]:
    """Map a chat-completions style choice value to a Messages tool_choice."""
    if isinstance(choice, str):
        return {"type": "none"} if choice == "none" else {"type": "auto"}
    if isinstance(choice, Mapping):
        if choice.get("type") in ("auto", "any", "none"):
            return {"type": choice["type"]}
        if choice.get("type") == "tool" and choice.get("name"):
            return {"type": "tool", "name": choice["name"]}
        function = choice.get("function")
        name = function.get("name") if isinstance(function, Mapping) else choice.get("name")
        if name:
            return {"type": "tool", "name": name}
    return None


def map_function_call(request: MutableMapping[str, Any]) -> None:
    """Rewrite ``function_call`` / chat-style ``tool_choice`` as Messages ``tool_choice``.

    The string ``"none"`` selects none, any other string selects auto, and an
    object naming a function selects that tool.
    """
    if "function_call" in request:
        function_call = request.pop("function_call")
        mapped = _choice_from_openai(function_call)
        if mapped is not None:
            request["tool_choice"] = mapped
        return

    tool_choice = request.get("tool_choice")
    if tool_choice is None:
        return
    mapped = _choice_from_openai(tool_choice)
    if mapped is None:
        logger.warning("Ignoring unrecognized tool_choice: %r", tool_choice)
        request.pop("tool_choice", None)
    else:
        request["tool_choice"] = mapped


def to_openai_tools(tools: Any) -> Optional[list[ChatTool]]:
    """Convert flat declarations to chat-completions tools.

    Returns None when nothing remains so callers can omit the key.
    """
    if not isinstance(tools, list):
        return None

    result: list[ChatTool] = []
    for tool in tools:
        declaration = _canonical_tool(tool)
        if declaration is None:
            continue
        if declaration.get("name") in EXCLUDED_TOOL_NAMES:
            logger.debug("Filtering out incompatible tool %s", declaration["name"])
            continue
        function: ChatFunction = {"name": declaration["name"]}
        if "description" in declaration:
            function["description"] = declaration["description"]
        function["parameters"] = declaration["input_schema"]
        result.append({"type": "function", "function": function})
    return result or None


def to_openai_tool_choice(tool_choice: Any) -> Optional[str | dict[str, Any]]:
    """Convert a Messages tool_choice to chat-completions form."""
    if tool_choice is None:
        return None
    if isinstance(tool_choice, str):
        return "none" if tool_choice == "none" else "auto"
    if not isinstance(tool_choice, Mapping):
        return None

    choice_type = tool_choice.get("type")
    if choice_type == "none":
        return "none"
    if choice_type == "tool" and tool_choice.get("name"):
        return {"type": "function", "function": {"name": tool_choice["name"]}}
    return "auto"
