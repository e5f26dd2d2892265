"""
Global Logging Configuration with Optional Journey Context Support

This module configures consistent logging for the application, including:
- Console output (INFO+)
- Rotating file output (DEBUG+)
- Per-journey contextual logging using `contextvars`

Responsibilities:
-----------------
- Configures unified logging with timestamps, levels and the logger name
- Optionally includes `[JOURNEY:<id>]` tags in logs emitted from a
  journey's polling task
- Ensures logs remain structured even when no journey is set

Usage:
------
1. Call `setup_logging()` in your application entry point.

    from app.core.logger import setup_logging
    setup_logging()

2. At the top of a journey's polling task, call `set_journey_context(...)`:

    from app.core.logger import set_journey_context
    set_journey_context(journey_id)

Every asyncio task runs in a copy of the context it was created in, so the tag
stays local to that journey's task.

Example:
    2025-04-28 14:00:10 [INFO] [app.processing.journey.tracker] [JOURNEY:3f2a...] Transfer alert notification sent
"""

import logging
import logging.handlers
import contextvars
from app.core.config import LOG_FILE

_log_journey = contextvars.ContextVar("log_journey", default="-")


def set_journey_context(journey_id: str) -> None:
    """
    Sets the logging context for the current journey.

    Args:
        journey_id (str): Identifier of the journey being tracked.
    """
    _log_journey.set(journey_id)

def get_journey_context() -> str:
    """
    Retrieves the currently set journey identifier for logging.

    Returns:
        str: The currently active journey context or "-" if not set.
    """
    return _log_journey.get()


class ContextFilter(logging.Filter):
    """
    Logging filter that injects the current journey context into each log record.
    """
    def filter(self, record: logging.LogRecord) -> bool:
        journey = get_journey_context()
        record.journey = f"[JOURNEY:{journey}]" if journey != "-" else ""
        return True

class SafeFormatter(logging.Formatter):
    """
    Custom formatter that avoids crashing on missing fields.

    Fallbacks are provided for any optional log record attributes.
    """
    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "journey"):
            record.journey = ""
        return super().format(record)


def setup_logging(
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> None:
    """
    Configures application-wide logging with console and rotating file output.

    Both handlers include `[JOURNEY:<id>]` if `set_journey_context(...)`
    has been called in the current execution context. Calling this more than
    once replaces the previously installed handlers.

    Args:
        console_level (int): Logging level for console (default: INFO).
        file_level (int): Logging level for file output (default: DEBUG).
        max_bytes (int): Max size in bytes before file rotation.
        backup_count (int): Number of backup files to keep.
    """
    formatter = SafeFormatter(
        fmt="%(asctime)s [%(levelname)s] [%(name)s] %(journey)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())

    file_handler = logging.handlers.RotatingFileHandler(
        LOG_FILE, mode="a", maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)
