"""
Structured logging for series lifecycle events.

Each record is a single JSON document carrying the event message, the
emitting component and any keyword fields. Output goes through the standard
logging hierarchy; handlers are configured by the application entry point.
"""

import json
import logging
from datetime import datetime, timezone

from taskseries.config import LOG_LEVEL


class StructuredLogger:
    """Logger wrapper rendering ``message`` plus keyword fields as JSON."""

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

    def _log_structured(self, level: int, message: str, **fields):
        if not self.logger.isEnabledFor(level):
            return
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "message": message,
            "service": self.logger.name,
            **fields,
        }
        self.logger.log(level, json.dumps(payload, default=str))

    def debug(self, message: str, **fields):
        self._log_structured(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log_structured(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log_structured(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._log_structured(logging.ERROR, message, **fields)


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for ``name`` at the configured ``LOG_LEVEL``."""
    return StructuredLogger(name, level=getattr(logging, LOG_LEVEL, logging.INFO))


series_logger = get_logger("taskseries.series")
