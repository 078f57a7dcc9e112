"""Credential masking for log output."""

import re
from typing import Mapping

_BEARER_RE = re.compile(r"Bearer\s+(\S+)")
_SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "x-api-key"}


def mask_bearer(value: str) -> str:
    """Replace every bearer token in ``value`` with a fixed mask."""
    return _BEARER_RE.sub("Bearer ********", value)


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` that is safe to write to a log."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        key = str(key)
        value = str(value)
        if key.lower() in _SENSITIVE_HEADERS:
            if value.startswith("Bearer "):
                masked[key] = mask_bearer(value)
            else:
                masked[key] = "********"
        else:
            masked[key] = value
    return masked
