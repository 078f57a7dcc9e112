"""Main FastAPI application for the Claude Code proxy."""

import logging
from typing import Optional

from fastapi import FastAPI

from .api.routes import health, messages_endpoint
from .logging import setup_logging
from .settings import ProxySettings, load_settings

logger = logging.getLogger("claude-code-proxy")


def create_app(settings: Optional[ProxySettings] = None) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        settings: Resolved settings; loaded from config and environment when
            omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if settings is None:
        settings = load_settings()
    setup_logging(settings.debug)

    app = FastAPI(title="Claude Code Proxy")
    app.state.settings = settings

    @app.on_event("startup")
    async def startup_event():
        logger.info("Claude Code Proxy server starting up...")
        logger.info("Configured bind address %s:%s", settings.host, settings.port)
        logger.info("Upstream: %s (dialect=%s)", settings.chat_completions_url, settings.dialect.name)
        logger.info("Completion model: %s", settings.completion_model)
        logger.info("Reasoning model: %s", settings.reasoning_model)
        if not settings.api_key:
            logger.warning("No upstream credential configured; requests are sent unauthenticated")

    app.get("/")(health)
    app.post("/v1/messages")(messages_endpoint)
    return app


class _LazyApp:
    """ASGI entry point that builds the app on first use.

    Importing this module must not read the environment; uvicorn resolves
    ``claude_code_proxy.main:app`` and calls it per connection.
    """

    def __init__(self) -> None:
        self._app: Optional[FastAPI] = None

    async def __call__(self, scope, receive, send) -> None:
        if self._app is None:
            self._app = create_app()
        await self._app(scope, receive, send)


app = _LazyApp()

__all__ = ["app", "create_app"]
