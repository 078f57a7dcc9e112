"""Resolved runtime settings.

Settings come from the YAML config (see :mod:`config_loader`) with
environment variables taking priority, mirroring how the proxy is usually
deployed: a container with a handful of env vars and no config file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .config_loader import load_config
from .core.dialect import DEFAULT_DIALECT, Dialect, get_dialect
from .core.exceptions import ConfigurationError

logger = logging.getLogger("claude-code-proxy")

DEFAULT_MODEL = "openai/gpt-4.1"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


@dataclass(frozen=True)
class ModelRoute:
    """Upstream model choice for one request."""

    model: str
    reasoning: bool
    max_tokens: Optional[int]
    max_tokens_field: str
    reasoning_effort: Optional[str] = None


@dataclass(frozen=True)
class ProxySettings:
    base_url: str
    api_key: Optional[str] = None
    reasoning_model: str = DEFAULT_MODEL
    completion_model: str = DEFAULT_MODEL
    reasoning_max_tokens: Optional[int] = None
    completion_max_tokens: Optional[int] = None
    reasoning_effort: Optional[str] = None
    debug: bool = False
    dialect: Dialect = field(default_factory=lambda: get_dialect(DEFAULT_DIALECT))
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: Optional[float] = None

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def route(self, thinking: Any) -> ModelRoute:
        """Pick the model class from the request's thinking flag alone."""
        reasoning = thinking_enabled(thinking)
        if reasoning:
            return ModelRoute(
                model=self.reasoning_model,
                reasoning=True,
                max_tokens=self.reasoning_max_tokens,
                max_tokens_field=self.dialect.token_field(True),
                reasoning_effort=self.reasoning_effort,
            )
        return ModelRoute(
            model=self.completion_model,
            reasoning=False,
            max_tokens=self.completion_max_tokens,
            max_tokens_field=self.dialect.token_field(False),
        )

    def to_public_dict(self) -> dict[str, Any]:
        """Non-secret view of the settings for the health endpoint."""
        return {
            "ANTHROPIC_PROXY_BASE_URL": self.base_url,
            "REASONING_MODEL": self.reasoning_model,
            "COMPLETION_MODEL": self.completion_model,
            "REASONING_MAX_TOKENS": self.reasoning_max_tokens,
            "COMPLETION_MAX_TOKENS": self.completion_max_tokens,
            "REASONING_EFFORT": self.reasoning_effort,
            "DIALECT": self.dialect.name,
        }


def thinking_enabled(thinking: Any) -> bool:
    """Interpret the request's ``thinking`` field as a boolean flag."""
    if isinstance(thinking, Mapping):
        return str(thinking.get("type", "enabled")).lower() != "disabled"
    return bool(thinking)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
    # A zero override means "no override"
    return parsed or None


def _parse_float(name: str, value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def build_settings(
    config: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProxySettings:
    """Resolve settings from a config mapping and an environment.

    Environment variables win over config values. ``environ`` defaults to
    ``os.environ``.
    """
    config = config or {}
    env = os.environ if environ is None else environ

    proxy_settings = config.get("proxy_settings") or {}
    server_cfg = proxy_settings.get("server") or {}
    upstream = config.get("upstream") or {}
    models = upstream.get("models") or {}
    max_tokens = upstream.get("max_tokens") or {}

    dialect = get_dialect(_first(env.get("CLAUDE_CODE_PROXY_DIALECT"), proxy_settings.get("dialect")))

    base_url = _first(
        env.get(dialect.base_url_env),
        upstream.get("base_url"),
        dialect.default_base_url,
    )
    api_key = _first(env.get(dialect.credential_env), upstream.get("api_key"))

    settings = ProxySettings(
        base_url=str(base_url).rstrip("/"),
        api_key=str(api_key) if api_key is not None else None,
        reasoning_model=str(_first(env.get("REASONING_MODEL"), models.get("reasoning"), DEFAULT_MODEL)),
        completion_model=str(_first(env.get("COMPLETION_MODEL"), models.get("completion"), DEFAULT_MODEL)),
        reasoning_max_tokens=_parse_int(
            "REASONING_MAX_TOKENS", _first(env.get("REASONING_MAX_TOKENS"), max_tokens.get("reasoning"))
        ),
        completion_max_tokens=_parse_int(
            "COMPLETION_MAX_TOKENS", _first(env.get("COMPLETION_MAX_TOKENS"), max_tokens.get("completion"))
        ),
        reasoning_effort=_first(env.get("REASONING_EFFORT"), upstream.get("reasoning_effort")),
        debug=_parse_bool(_first(env.get("DEBUG"), proxy_settings.get("debug"))),
        dialect=dialect,
        host=str(_first(env.get("HOST"), server_cfg.get("host"), DEFAULT_HOST)),
        port=_parse_int("PORT", _first(env.get("PORT"), server_cfg.get("port"))) or DEFAULT_PORT,
        timeout=_parse_float("timeout", upstream.get("timeout")),
    )
    logger.debug(
        "Resolved settings: dialect=%s base_url=%s completion=%s reasoning=%s",
        settings.dialect.name,
        settings.base_url,
        settings.completion_model,
        settings.reasoning_model,
    )
    return settings


def load_settings(path: str | None = None) -> ProxySettings:
    """Load the YAML config (if any) and resolve settings against the environment."""
    return build_settings(load_config(path))
