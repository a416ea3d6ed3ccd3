"""Logging configuration for Latchkey.

Provides structured logging with appropriate levels for application
code vs third-party libraries.
"""

import logging
import sys
from typing import Literal

import structlog

from latchkey.settings import get_settings

# List of noisy third-party loggers to suppress
NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "asyncio",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "uvicorn.access",
]


def suppress_noisy_loggers() -> None:
    """Suppress noisy third-party loggers.

    Call this after importing libraries that configure their own logging.
    """
    for logger_name in NOISY_LOGGERS:
        logger = logging.getLogger(logger_name)
        logger.setLevel(logging.WARNING)
        logger.handlers.clear()


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
) -> None:
    """Configure application logging.

    Sets up structured logging with:
    - Application logs at configured level
    - Third-party library logs suppressed to WARNING+
    - structlog events rendered through the same stdlib handler

    Args:
        level: Override log level (defaults to settings.log_level)
    """
    settings = get_settings()
    log_level = level or settings.log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level))
    console_handler.setFormatter(
        logging.Formatter(
            "%(levelname)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    logging.getLogger("latchkey").setLevel(getattr(logging, log_level))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], sort_keys=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    suppress_noisy_loggers()

