"""Logging configuration for the proxy."""

import logging
import sys

LOGGER_NAME = "claude-code-proxy"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Set up logging with proper handlers and formatters.

    Args:
        debug: Emit DEBUG records (request/response dumps) when True.
    """
    level = logging.DEBUG if debug else logging.INFO
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate so pytest's caplog and host applications still see records
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
