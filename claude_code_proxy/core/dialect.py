"""Upstream dialects.

The proxy speaks to several chat-completions providers that differ only in
naming conventions: which environment variables hold the credential and base
URL, and which field carries the token limit for reasoning-class models. A
dialect is selected once at startup and threaded through the settings.
"""

from dataclasses import dataclass

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class Dialect:
    name: str
    credential_env: str
    base_url_env: str
    default_base_url: str
    max_tokens_field: str = "max_tokens"
    reasoning_max_tokens_field: str = "max_tokens"

    def token_field(self, reasoning: bool) -> str:
        return self.reasoning_max_tokens_field if reasoning else self.max_tokens_field


DIALECTS: dict[str, Dialect] = {
    "github": Dialect(
        name="github",
        credential_env="CLAUDE_CODE_PROXY_API_KEY",
        base_url_env="ANTHROPIC_PROXY_BASE_URL",
        default_base_url="https://models.github.ai/inference",
    ),
    "openai": Dialect(
        name="openai",
        credential_env="OPENAI_API_KEY",
        base_url_env="OPENAI_BASE_URL",
        default_base_url="https://api.openai.com/v1",
        reasoning_max_tokens_field="max_completion_tokens",
    ),
}

DEFAULT_DIALECT = "github"


def get_dialect(name: str | None) -> Dialect:
    """Look up a dialect by name (case-insensitive)."""
    key = (name or DEFAULT_DIALECT).strip().lower() or DEFAULT_DIALECT
    try:
        return DIALECTS[key]
    except KeyError:
        known = ", ".join(sorted(DIALECTS))
        raise ConfigurationError(f"Unknown upstream dialect '{name}' (known: {known})") from None
