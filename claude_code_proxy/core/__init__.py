"""Core module initialization."""

from .dialect import DIALECTS, Dialect, get_dialect
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    ProxyError,
    UpstreamHTTPError,
    UpstreamResponseError,
    UpstreamStreamError,
)
from .sse import SSELineBuffer, format_sse_event
from .upstream import UpstreamStream, build_upstream_headers, open_chat_stream, post_chat_completion
from .upstream_transport import (
    clear_upstream_transports,
    get_upstream_transport,
    register_upstream_transport,
)

__all__ = [
    "ConfigurationError",
    "DIALECTS",
    "Dialect",
    "InvalidRequestError",
    "ProxyError",
    "SSELineBuffer",
    "UpstreamHTTPError",
    "UpstreamResponseError",
    "UpstreamStream",
    "UpstreamStreamError",
    "build_upstream_headers",
    "clear_upstream_transports",
    "format_sse_event",
    "get_dialect",
    "get_upstream_transport",
    "open_chat_stream",
    "post_chat_completion",
    "register_upstream_transport",
]
