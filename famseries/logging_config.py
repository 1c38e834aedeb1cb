"""
Central logging configuration for famseries.

Sets up a colourised console handler once, applies per-module levels, and
tags every record with the series currently being processed so that batch
job output can be correlated per series.
"""

import contextlib
import contextvars
import logging
import os
import sys
from collections.abc import Iterator
from typing import Optional

from colorlog import ColoredFormatter

DEBUG_ENV = "FAMSERIES_DEBUG"
LOG_LEVEL_ENV = "FAMSERIES_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s [%(series_id)s] %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

PACKAGE_MODULES = [
    "famseries",
    "famseries.interpreter",
    "famseries.reconciler",
    "famseries.materializer",
    "famseries.engine",
    "famseries.mutations",
    "famseries.store",
    "famseries.legacy_generator",
]

_current_series: contextvars.ContextVar[str] = contextvars.ContextVar("famseries_series_id", default="-")


class SeriesContextFilter(logging.Filter):
    """Add the id of the series being processed to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.series_id = _current_series.get()
        return True


@contextlib.contextmanager
def series_context(series_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``series_id``."""
    token = _current_series.set(series_id)
    try:
        yield
    finally:
        _current_series.reset(token)


def current_series_id() -> str:
    return _current_series.get()


def _env_debug() -> bool:
    return os.getenv(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    level_name: Optional[str] = None,
) -> None:
    """
    Configure root and famseries loggers.

    Args:
        debug_mode: Whether to enable debug logging for famseries modules
        force_debug: Override debug mode setting (None to use env var detection)
        level_name: Root level from configuration, used when no override applies

    Environment Variables:
        FAMSERIES_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        FAMSERIES_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv(LOG_LEVEL_ENV, "").upper()

    if force_debug is not None:
        final_debug = force_debug
    else:
        final_debug = debug_mode or _env_debug()

    root_level = logging.DEBUG if final_debug else logging.INFO
    if not final_debug and level_name and level_name.upper() in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, level_name.upper())
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    context_filter = SeriesContextFilter()
    if not root_logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, SeriesContextFilter) for f in existing_handler.filters):
                existing_handler.addFilter(context_filter)

    package_level = logging.DEBUG if final_debug else root_level
    for module in PACKAGE_MODULES:
        logging.getLogger(module).setLevel(package_level)

    # dateutil's parser is chatty at DEBUG
    logging.getLogger("dateutil").setLevel(logging.WARNING)

    if final_debug:
        root_logger.debug("Debug logging enabled for famseries modules")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in PACKAGE_MODULES:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status


def reset_logging_to_debug() -> None:
    """Set the root and every famseries logger to DEBUG for troubleshooting."""
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in PACKAGE_MODULES:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)
    logging.getLogger().info("All famseries loggers reset to DEBUG level")
