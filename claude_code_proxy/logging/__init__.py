"""Logging module for the proxy."""

from .masking import mask_bearer, safe_headers_for_log
from .setup import LOGGER_NAME, logger, setup_logging

__all__ = [
    "LOGGER_NAME",
    "logger",
    "mask_bearer",
    "safe_headers_for_log",
    "setup_logging",
]
