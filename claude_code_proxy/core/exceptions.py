"""Core exceptions for the proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    error_type = "api_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    error_type = "invalid_request_error"
    status_code = 400

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class UpstreamHTTPError(ProxyError):
    """Upstream answered with a non-2xx status.

    The raw body is kept verbatim so it can be relayed to the caller.
    """

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(body or f"upstream returned status {status_code}")
        self.status_code = status_code
        self.body = body


class UpstreamResponseError(ProxyError):
    """Upstream answered 200 but embedded an error object in the body."""

    def __init__(self, message: str, error: Optional[dict] = None) -> None:
        super().__init__(message)
        self.error = error or {}


class UpstreamStreamError(UpstreamResponseError):
    """An error frame arrived in the middle of an upstream event stream."""
    pass


def embedded_error_message(error: object) -> str:
    """Extract a human readable message from an embedded upstream error."""
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
        return str(error)
    if isinstance(error, str) and error:
        return error
    return "unknown upstream error"
