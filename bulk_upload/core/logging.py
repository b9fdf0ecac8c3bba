"""Structured logging configuration for the bulk upload service.

Uses structlog for JSON-formatted logging with context-variable support, so a
run_id or request_id bound once shows up on every event of that run.
"""

import logging

import structlog

from bulk_upload.config import config


def configure_logging(level: str = "INFO"):
    """Configure structured logging with JSON output.

    Args:
        level: Minimum log level name (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured structlog logger
    """
    level_value = logging.getLevelName(level.upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger()


# Global logger instance
logger = configure_logging(config.log_level())
