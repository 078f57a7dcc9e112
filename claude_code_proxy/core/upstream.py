"""HTTP calls to the chat-completions upstream."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import httpx

from ..logging import safe_headers_for_log
from .exceptions import UpstreamHTTPError, UpstreamResponseError
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("claude-code-proxy")

DisconnectChecker = Callable[[], Awaitable[bool]]


def build_upstream_headers(api_key: Optional[str]) -> dict[str, str]:
    """Build headers for the outbound chat-completions call."""
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    # Explicitly request uncompressed responses
    headers["Accept-Encoding"] = "identity"
    return headers


def format_httpx_error(exc: Any, url: Optional[str] = None, timeout: Optional[float] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when no request is attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException) and timeout:
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def _client_timeout(timeout: Optional[float], stream: bool) -> httpx.Timeout:
    if timeout is None:
        return httpx.Timeout(None)
    # A stream may stay silent between tokens for longer than any request timeout
    return httpx.Timeout(connect=timeout, read=None if stream else timeout, write=timeout, pool=timeout)


async def post_chat_completion(
    url: str,
    headers: dict[str, str],
    body: dict[str, Any],
    timeout: Optional[float] = None,
) -> dict[str, Any]:
    """POST a non-streaming chat completion and return the decoded body.

    Raises:
        UpstreamHTTPError: upstream answered with a non-2xx status
        UpstreamResponseError: the body is not a JSON object
    """
    transport = get_upstream_transport(url)
    logger.debug(f"Initiating non-streaming request to {url}")
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Request headers: %s", safe_headers_for_log(headers))

    async with httpx.AsyncClient(
        timeout=_client_timeout(timeout, stream=False), transport=transport, follow_redirects=True
    ) as client:
        resp = await client.post(url, headers=headers, json=body)

    logger.debug(f"Received response from {url}: status {resp.status_code}")
    if resp.status_code >= 400:
        logger.warning(f"Upstream {url} returned error status {resp.status_code}")
        raise UpstreamHTTPError(resp.status_code, resp.text)

    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError) as exc:
        raise UpstreamResponseError(f"Upstream returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise UpstreamResponseError("Upstream returned a non-object JSON body")
    return payload


class UpstreamStream:
    """An open streaming response from the upstream.

    ``close`` is idempotent and must be awaited on every exit path; the
    streaming endpoint does so from a ``finally`` block.
    """

    def __init__(self, url: str, client: httpx.AsyncClient, response: httpx.Response):
        self.url = url
        self.client = client
        self.response = response
        self.chunk_count = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_bytes(
        self,
        disconnect_checker: Optional[DisconnectChecker] = None,
    ) -> AsyncIterator[bytes]:
        """Yield decoded body chunks, stopping early if the client went away."""
        stream = self.response.aiter_bytes()
        while True:
            if disconnect_checker and await disconnect_checker():
                raise asyncio.CancelledError("client disconnected")
            try:
                chunk = await stream.__anext__()
            except StopAsyncIteration:
                break
            if chunk:
                self.chunk_count += 1
                if self.chunk_count % 10 == 0:
                    logger.debug(f"Streamed {self.chunk_count} chunks from {self.url}")
                yield chunk

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing stream for {self.url}")
        try:
            await self.response.aclose()
        finally:
            await self.client.aclose()


async def open_chat_stream(
    url: str,
    headers: dict[str, str],
    body: dict[str, Any],
    timeout: Optional[float] = None,
) -> UpstreamStream:
    """Send a streaming chat completion request and return the open stream.

    Raises:
        UpstreamHTTPError: upstream answered with a non-2xx status (the
            response is fully read and released first)
    """
    transport = get_upstream_transport(url)
    client = httpx.AsyncClient(
        timeout=_client_timeout(timeout, stream=True), transport=transport, follow_redirects=True
    )
    try:
        request = client.build_request("POST", url, headers=headers, json=body)
        logger.debug(f"Sending streaming request to {url}")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Request headers: %s", safe_headers_for_log(request.headers))
        resp = await client.send(request, stream=True)
    except Exception as exc:
        logger.error(f"Failed to send streaming request to {url}: {exc} (type: {exc.__class__.__name__})")
        await client.aclose()
        raise

    stream = UpstreamStream(url, client, resp)
    if resp.status_code >= 400:
        logger.warning(f"Streaming request to {url} returned error status {resp.status_code}")
        try:
            data = await resp.aread()
        finally:
            await stream.close()
        raise UpstreamHTTPError(resp.status_code, data.decode("utf-8", errors="replace"))

    logger.info(f"Streaming request to {url} successful, status {resp.status_code}")
    return stream
