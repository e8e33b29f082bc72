"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production and pretty console
logs for development. Supports contextual logging with bound
fields (e.g., source_id, tier).
"""

import logging
import sys

import structlog
from structlog.types import Processor

from news_monitor.config.settings import get_settings

# Libraries whose INFO output drowns the per-source fetch logs
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg", "feedparser")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    In production: JSON-formatted logs
    In development: Pretty console output with colors

    Args:
        level: Optional log level overriding the configured one

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Fetched source", source_id="abc", articles=5)
    """
    settings = get_settings()
    log_level = level or settings.log_level

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_context(**kwargs):
    """
    Bind fields to every log line emitted inside the block.

    The CLI binds ``command`` and ``owner_id`` so fetch, reorder and
    settings logs can be told apart when several runs share a log sink.

    Usage:
        with log_context(command="watch", owner_id="alice"):
            await monitor.start()
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
