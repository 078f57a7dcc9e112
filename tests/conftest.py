"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Generator

import httpx
import pytest

from claude_code_proxy.core.dialect import get_dialect
from claude_code_proxy.core.upstream_transport import (
    clear_upstream_transports,
    register_upstream_transport,
)
from claude_code_proxy.settings import ProxySettings
from claude_code_proxy.testing import FakeUpstream

UPSTREAM_BASE_URL = "http://upstream.local/v1"

# Variables read by build_settings; cleared so the host environment never leaks in
SETTINGS_ENV_VARS = (
    "ANTHROPIC_PROXY_BASE_URL",
    "CLAUDE_CODE_PROXY_API_KEY",
    "CLAUDE_CODE_PROXY_CONFIG",
    "CLAUDE_CODE_PROXY_DIALECT",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "REASONING_MODEL",
    "COMPLETION_MODEL",
    "REASONING_MAX_TOKENS",
    "COMPLETION_MAX_TOKENS",
    "REASONING_EFFORT",
    "DEBUG",
    "HOST",
    "PORT",
)


# =============================================================================
# Environment / Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every settings-related environment variable for the test."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


# =============================================================================
# Settings / Harness Builders
# =============================================================================


def build_test_settings(**overrides: Any) -> ProxySettings:
    """Settings pointing at the fake upstream host."""
    values: dict[str, Any] = {
        "base_url": UPSTREAM_BASE_URL,
        "api_key": "test-key",
        "reasoning_model": "test-reasoning-model",
        "completion_model": "test-completion-model",
        "dialect": get_dialect("github"),
    }
    values.update(overrides)
    return ProxySettings(**values)


def register_fake_upstream(upstream: FakeUpstream, base_url: str = UPSTREAM_BASE_URL) -> None:
    """Route calls for ``base_url``'s host into the fake upstream app."""
    register_upstream_transport(base_url, httpx.ASGITransport(app=upstream.app))


def make_proxy_client(app: Any) -> httpx.AsyncClient:
    """An httpx client that talks to the proxy app in-process."""
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://proxy.local")


@pytest.fixture
def settings() -> ProxySettings:
    return build_test_settings()


@pytest.fixture
def fake_upstream(clear_transport_registry: None) -> FakeUpstream:
    """A FakeUpstream already registered for the test upstream host."""
    upstream = FakeUpstream()
    register_fake_upstream(upstream)
    return upstream


@pytest.fixture
def proxy_app(settings: ProxySettings) -> Any:
    from claude_code_proxy.main import create_app

    return create_app(settings)
