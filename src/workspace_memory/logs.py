"""
Structured logging setup.

Everything is rendered to stderr: when running as an MCP stdio server,
stdout carries the protocol stream and must stay clean.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.typing import FilteringBoundLogger


def _stderr_logger(*_args: object) -> structlog.PrintLogger:
    # Resolved per call so a replaced sys.stderr is honoured.
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog (and stdlib logging from third-party libraries)."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )

    # chromadb and httpx log through the standard library.
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, level=numeric_level)


def get_logger(name: str) -> FilteringBoundLogger:
    """Return a structlog logger bound to *name*."""
    return structlog.get_logger(name)