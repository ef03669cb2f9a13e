"""
Structured JSON logging for sync activity.

The store facade logs commits, flushes and bootstraps with their
context in ``extra``. The formatter groups that context under ``sync``
and expands OfflineSyncError details under ``error``:

    {"timestamp": "2024-05-01T09:30:00.125+00:00", "level": "WARNING",
     "logger": "offline_sync_store.store", "message": "Server sync incomplete",
     "sync": {"store_id": "people", "confirmed": ["created"],
              "failed": ["updated"], "duration_ms": 41}}
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from .exceptions import OfflineSyncError

PACKAGE_LOGGER = "offline_sync_store"

# Context fields the store attaches to its log records
SYNC_FIELDS = (
    "store_id",
    "committed",
    "confirmed",
    "failed",
    "kinds",
    "id_map",
    "records",
    "discarded",
    "duration_ms",
)


class StructuredJsonFormatter(logging.Formatter):
    """Formats sync log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {name: getattr(record, name) for name in SYNC_FIELDS if hasattr(record, name)}
        if context:
            entry["sync"] = context

        if record.exc_info:
            error = record.exc_info[1]
            if isinstance(error, OfflineSyncError):
                entry["error"] = {
                    "type": type(error).__name__,
                    "message": error.message,
                    "details": error.details,
                }
            else:
                entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Send the package's log records to stdout as JSON.

    Calling it again replaces the handler instead of adding a second one.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_sync_logger(name: str) -> logging.Logger:
    """Return the ``offline_sync_store.{name}`` logger."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """Adds the store's identifier to every record it logs."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs
