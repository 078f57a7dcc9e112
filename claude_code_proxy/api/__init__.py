"""API module for the proxy."""

from .routes import health, messages_endpoint

__all__ = [
    "health",
    "messages_endpoint",
]
