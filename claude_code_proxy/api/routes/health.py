"""Health check endpoint."""

import logging

from fastapi import Request

logger = logging.getLogger("claude-code-proxy")


async def health(request: Request) -> dict:
    """GET / - report liveness and the non-secret part of the configuration."""
    settings = request.app.state.settings
    return {
        "status": "ok",
        "message": "Claude Code Proxy is running",
        "config": settings.to_public_dict(),
    }
