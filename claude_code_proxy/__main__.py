"""Command line entry point: ``python -m claude_code_proxy``."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

import uvicorn

from .core.exceptions import ConfigurationError
from .main import create_app
from .settings import load_settings

logger = logging.getLogger("claude-code-proxy")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-code-proxy",
        description="Serve the Anthropic Messages API on top of an OpenAI-compatible upstream.",
    )
    parser.add_argument("--config", help="Path to the YAML config file")
    parser.add_argument("--host", help="Bind address (overrides HOST and the config file)")
    parser.add_argument("--port", type=int, help="Bind port (overrides PORT and the config file)")
    parser.add_argument("--debug", action="store_true", help="Log request and response details")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        return 2

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.debug:
        overrides["debug"] = True
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
