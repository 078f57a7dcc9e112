"""Anthropic-compatible Messages API endpoint."""

import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping, Optional

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...core.exceptions import InvalidRequestError, UpstreamHTTPError, UpstreamResponseError
from ...core.upstream import (
    build_upstream_headers,
    format_httpx_error,
    open_chat_stream,
    post_chat_completion,
)
from ...messages import (
    ChatToMessagesStreamAdapter,
    chat_completion_to_messages,
    messages_to_chat_completions,
    new_message_id,
)
from ...settings import ProxySettings

logger = logging.getLogger("claude-code-proxy")

DROPPED_PARAMS_HEADER = "X-Dropped-Params"

# Anthropic error types keyed by upstream status
_ERROR_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    413: "request_too_large",
    429: "rate_limit_error",
    529: "overloaded_error",
}


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    error_code: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if error_code:
        error["code"] = error_code
    payload = {"type": "error", "error": error}
    return JSONResponse(payload, status_code=status_code, headers=dict(headers or {}))


def _error_type_for_status(status_code: int) -> str:
    if status_code in _ERROR_TYPES:
        return _ERROR_TYPES[status_code]
    return "api_error" if status_code >= 500 else "invalid_request_error"


def _dropped_headers(dropped: list[str]) -> dict[str, str]:
    if not dropped:
        return {}
    return {DROPPED_PARAMS_HEADER: ",".join(dropped)}


def _settings_for(request: Request) -> ProxySettings:
    return request.app.state.settings


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    settings = _settings_for(request)

    client_host = request.client.host if request.client else "unknown"
    content_length = request.headers.get("content-length", "not-set")
    logger.info(f"[{req_id}] Messages API request from {client_host}, Content-Length: {content_length}")

    try:
        body = await request.body()
        payload = json.loads(body or b"{}")
    except ClientDisconnect:
        logger.warning(f"[{req_id}] ClientDisconnect while reading request body")
        return Response(status_code=499)  # Client Closed Request
    except json.JSONDecodeError as exc:
        logger.warning(f"[{req_id}] Invalid JSON payload: {exc}")
        return _anthropic_error_response("Invalid JSON payload", error_code="invalid_json")

    if not isinstance(payload, Mapping):
        return _anthropic_error_response(
            "Request body must be a JSON object",
            error_code="invalid_json_shape",
        )

    try:
        translated = messages_to_chat_completions(payload, settings)
    except InvalidRequestError as exc:
        logger.warning(f"[{req_id}] Rejected messages request: {exc.message}")
        return _anthropic_error_response(
            exc.message,
            error_type=exc.error_type,
            status_code=exc.status_code,
            error_code=exc.code,
        )
    except Exception as exc:
        logger.exception(f"[{req_id}] Failed to translate messages request: {exc}")
        return _anthropic_error_response(
            f"Failed to translate request: {exc}",
            error_type="api_error",
            status_code=500,
            error_code="translation_error",
        )

    extra_headers = _dropped_headers(translated.dropped_params)
    if translated.dropped_params:
        logger.info(f"[{req_id}] Dropped unsupported parameters: {', '.join(translated.dropped_params)}")

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"[{req_id}] Translated to OpenAI format: model={translated.model}, "
            f"reasoning={translated.route.reasoning}, "
            f"messages_count={len(translated.body.get('messages', []))}, stream={translated.stream}"
        )

    url = settings.chat_completions_url
    headers = build_upstream_headers(settings.api_key)

    try:
        if translated.stream:
            return await _stream_response(
                req_id, request, settings, url, headers, translated.body, extra_headers, start_time
            )
        return await _complete_response(
            req_id, settings, url, headers, translated.body, extra_headers, start_time
        )
    except UpstreamHTTPError as exc:
        logger.warning(f"[{req_id}] Upstream returned status {exc.status_code}")
        return _anthropic_error_response(
            exc.message,
            error_type=_error_type_for_status(exc.status_code),
            status_code=exc.status_code,
            headers=extra_headers,
        )
    except UpstreamResponseError as exc:
        logger.error(f"[{req_id}] Upstream returned an error object: {exc.message}")
        return _anthropic_error_response(
            exc.message, error_type="api_error", status_code=500, headers=extra_headers
        )
    except httpx.HTTPError as exc:
        message = format_httpx_error(exc, url, settings.timeout)
        logger.error(f"[{req_id}] Upstream request failed: {message}")
        return _anthropic_error_response(
            message, error_type="api_error", status_code=500, headers=extra_headers
        )
    except Exception as exc:
        elapsed = time.perf_counter() - start_time
        logger.exception(f"[{req_id}] Unhandled error after {elapsed:.3f}s: {exc}")
        return _anthropic_error_response(
            str(exc) or exc.__class__.__name__,
            error_type="api_error",
            status_code=500,
            headers=extra_headers,
        )


async def _complete_response(
    req_id: str,
    settings: ProxySettings,
    url: str,
    headers: dict[str, str],
    body: dict[str, Any],
    extra_headers: dict[str, str],
    start_time: float,
) -> JSONResponse:
    completion = await post_chat_completion(url, headers, body, settings.timeout)
    message = chat_completion_to_messages(completion, model=body["model"])

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed non-streaming response for {body['model']}, "
        f"stop_reason={message['stop_reason']}, took {elapsed:.3f}s"
    )
    return JSONResponse(message, headers=extra_headers)


async def _stream_response(
    req_id: str,
    request: Request,
    settings: ProxySettings,
    url: str,
    headers: dict[str, str],
    body: dict[str, Any],
    extra_headers: dict[str, str],
    start_time: float,
) -> StreamingResponse:
    upstream = await open_chat_stream(url, headers, body, settings.timeout)

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Starting translated streaming response for {body['model']}, "
        f"setup took {elapsed:.3f}s"
    )

    adapter = ChatToMessagesStreamAdapter(new_message_id(), body["model"])

    async def adapted_stream() -> AsyncIterator[bytes]:
        """Wrap the OpenAI stream and convert to Anthropic format."""
        try:
            async for event in adapter.adapt_stream(upstream.iter_bytes(request.is_disconnected)):
                yield event
        finally:
            await upstream.close()
            logger.debug(
                f"[{req_id}] Stream finished in state {adapter.state.value} "
                f"after {upstream.chunk_count} upstream chunks"
            )

    response_headers = {"Cache-Control": "no-cache", "Connection": "keep-alive", **extra_headers}
    return StreamingResponse(
        adapted_stream(),
        headers=response_headers,
        media_type="text/event-stream",
    )
