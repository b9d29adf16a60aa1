"""
polycache - Structured Logging

JSON log formatting for the "polycache" logger hierarchy. Every module logs
through logging.getLogger(__name__) with structured fields in `extra`;
setup_logging() renders those fields as JSON.
"""

import json
import logging
from datetime import UTC, datetime

from ..config.schemas import LogLevel

# LogRecord attributes that are not user-supplied extras
_RESERVED = frozenset(
    (
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "name",
        "message",
    )
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add any extra fields from record.__dict__
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in _RESERVED:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: LogLevel | str = LogLevel.INFO) -> logging.Logger:
    """
    Attach a JSON handler to the package logger.

    Replaces handlers installed by a previous call, so it is safe to call
    again after reloading configuration.

    Returns:
        The configured "polycache" logger
    """
    logger = logging.getLogger("polycache")
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(LogLevel(level).value)

    return logger
