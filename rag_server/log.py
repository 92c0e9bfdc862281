"""Structured logging setup.

stdout carries the stdio protocol, so every log line goes to stderr.
"""
import logging
import sys

import structlog

from rag_server import config


def configure_logging(level: str = None, fmt: str = None) -> None:
    """Configure structlog to render through stdlib logging on stderr.

    Args:
        level: Log level name (default from config)
        fmt: "console" for human-readable output, "json" for JSON lines
    """
    level = (level or config.LOG_LEVEL).upper()
    fmt = fmt or config.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
