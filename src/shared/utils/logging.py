"""Shared logging configuration for the sync entry points.

The HTTP handlers and CLIs call ``setup_logging`` once
at startup; library modules only ever use ``logging.getLogger(__name__)``.
"""

from __future__ import annotations
import logging
import os
import sys
from typing import Iterable, Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SHORT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

# HTTP and database client libraries log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "supabase", "postgrest")


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure the root logger with a stdout handler.

    Args:
        level: Logging level name. Falls back to LOG_LEVEL, then INFO.
        format_string: Custom format string. If None, uses the default format.
        include_timestamp: Whether the default format carries a timestamp.
        quiet: Logger names forced to WARNING.

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logging.getLogger(__name__).debug("ladder resolved")
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()

    if format_string is None:
        format_string = DEFAULT_FORMAT if include_timestamp else SHORT_FORMAT

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=format_string,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    for logger_name in quiet:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a named logger, optionally pinned to ``level``."""
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger
