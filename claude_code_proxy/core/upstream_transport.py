"""Registry for per-host HTTPX transports (test/in-process upstreams)."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("claude-code-proxy")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _host_key(url_or_host: str) -> str:
    netloc = urlparse(url_or_host).netloc if "://" in url_or_host else url_or_host
    return netloc.strip().lower()


def register_upstream_transport(url_or_host: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route every upstream call for a host through ``transport``.

    Accepts either a bare netloc ('upstream.local:8000') or a full URL.
    """
    key = _host_key(url_or_host or "")
    if not key:
        raise ValueError("host is required")
    _TRANSPORTS[key] = transport
    logger.debug("Registered upstream transport for host '%s'", key)


def unregister_upstream_transport(url_or_host: str) -> None:
    if url_or_host:
        _TRANSPORTS.pop(_host_key(url_or_host), None)


def clear_upstream_transports() -> None:
    """Clear all registered transports (useful for tests)."""
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Return the transport registered for the URL's host, if any."""
    if not url:
        return None
    key = _host_key(url)
    return _TRANSPORTS.get(key) if key else None
