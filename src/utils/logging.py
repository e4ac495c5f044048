"""Structured logging setup."""

import logging
import sys

import structlog

from ..config import settings


def setup_logging(level: str = None, log_format: str = None) -> None:
    """Configure structlog on top of the standard library logger.

    Args:
        level: Log level name, defaults to ``settings.logging.log_level``
        log_format: ``json`` or ``console``, defaults to ``settings.logging.log_format``
    """
    config = settings.logging
    level = (level or config.log_level).upper()
    log_format = (log_format or config.log_format).lower()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
        force=True,
    )
    # discord.py is chatty at INFO
    logging.getLogger("discord").setLevel(max(logging.WARNING, logging.getLogger().level))

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Get a structlog logger."""
    return structlog.get_logger(name)
