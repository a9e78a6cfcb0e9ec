"""Logging configuration with JSON formatting."""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from submit_guard.config import settings

# Context fields that may carry caller credentials
SENSITIVE_FIELDS = frozenset({"authorization", "auth_token", "token"})
REDACTED = "***"


def redact(context: dict[str, Any]) -> dict[str, Any]:
    """
    Mask credential-bearing fields in a log context.

    Args:
        context: Context dict passed through `extra={"context": ...}`

    Returns:
        Copy of the context with sensitive values replaced
    """
    return {
        key: REDACTED if key.lower() in SENSITIVE_FIELDS and value else value
        for key, value in context.items()
    }


class JSONFormatter(logging.Formatter):
    """
    Formatter that renders each record as one JSON line.

    Fields:
    - timestamp: ISO 8601 timestamp in UTC
    - level, logger, message
    - correlation_id: request correlation ID (if present in extra)
    - everything in `extra["context"]`, with credentials masked
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id

        if hasattr(record, "context"):
            log_data.update(redact(record.context))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.levelno == logging.DEBUG:
            log_data["file"] = record.pathname
            log_data["line"] = record.lineno
            log_data["function"] = record.funcName

        return json.dumps(log_data, default=str)


def configure_logging(level: str | None = None) -> None:
    """
    Send structured JSON logs to stdout.

    Args:
        level: Log level name; defaults to the LOG_LEVEL setting
    """
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Repeated calls (tests, reloads) must not stack handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(console_handler)

    root_logger.info(
        "Logging configured",
        extra={"context": {"log_level": level_name}},
    )


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (typically `__name__`)."""
    return logging.getLogger(name)
