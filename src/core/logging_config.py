"""Structured logging configuration.

Loggers are structlog bound loggers rendered as JSON lines through the
standard logging module, so handlers and levels stay under stdlib control.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_CONFIGURED = False


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger that accepts keyword event fields.
    """
    _configure_structlog()
    return structlog.get_logger(name)


def configure_logging(level: str) -> None:
    """Attach a stderr handler and set the root level.

    Does nothing to handlers when the root logger is already configured,
    e.g. by an embedding application or the test runner.

    Args:
        level: Standard logging level name.
    """
    logging.basicConfig(stream=sys.stderr, format="%(message)s")
    logging.getLogger().setLevel(level)
    _configure_structlog()


def _configure_structlog() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True
