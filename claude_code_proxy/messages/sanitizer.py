"""Root-level parameter sanitization.

Clients sometimes send chat-completions parameters to the Messages endpoint.
Those with a Messages equivalent are renamed; the rest are removed and
reported so the caller can see what was ignored.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

logger = logging.getLogger("claude-code-proxy")

DEFAULT_MAX_TOKENS = 4096

# Chat-completions parameters with no Messages counterpart, in report order.
DROP_KEYS = (
    "n",
    "best_of",
    "presence_penalty",
    "frequency_penalty",
    "logit_bias",
    "seed",
    "stream_options",
    "logprobs",
    "top_logprobs",
    "echo",
    "response_format",
    "service_tier",
    "parallel_tool_calls",
)


def sanitize_root(request: MutableMapping[str, Any]) -> list[str]:
    """Sanitize ``request`` in place and return the dropped parameter names.

    - ``stop`` becomes ``stop_sequences`` (a scalar is wrapped in a list)
    - ``user`` moves to ``metadata.user_id`` and is reported as dropped
    - every key in :data:`DROP_KEYS` is removed and reported
    - ``max_tokens`` is guaranteed, falling back to ``max_completion_tokens``
      and then :data:`DEFAULT_MAX_TOKENS`
    """
    dropped: list[str] = []

    if "stop" in request:
        stop = request.pop("stop")
        if stop is not None:
            request["stop_sequences"] = list(stop) if isinstance(stop, (list, tuple)) else [stop]

    if "user" in request:
        user = request.pop("user")
        if user:
            metadata = request.get("metadata")
            merged = dict(metadata) if isinstance(metadata, MutableMapping) else {}
            merged["user_id"] = user
            request["metadata"] = merged
        dropped.append("user")

    for key in DROP_KEYS:
        if key in request:
            del request[key]
            dropped.append(key)

    max_completion_tokens = request.pop("max_completion_tokens", None)
    if request.get("max_tokens") is None:
        request["max_tokens"] = (
            max_completion_tokens if max_completion_tokens is not None else DEFAULT_MAX_TOKENS
        )

    if dropped:
        logger.debug("Dropped unsupported parameters: %s", ", ".join(dropped))
    return dropped
