"""Logging setup shared by the whole package.

Every module obtains its logger through :func:`get_logger` and emits
structured events (``logger.warning("timer.clock_backward", elapsed=...)``).
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str = "WARNING", format_json: bool = False) -> None:
    """Route structlog through stdlib logging on stderr at *level*.

    With *format_json* every event is one JSON line; otherwise it is
    rendered for a human reader.
    """
    # stderr keeps stdout free for the CLI's own output
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
        format="%(message)s",
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if format_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
