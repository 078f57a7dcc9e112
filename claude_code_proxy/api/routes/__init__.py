"""API routes for the proxy."""

from .health import health
from .messages import messages_endpoint

__all__ = [
    "health",
    "messages_endpoint",
]
