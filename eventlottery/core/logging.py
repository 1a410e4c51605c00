"""Structured JSON logging for eventlottery.

Every record becomes one JSON object per line. Lottery and notification
code passes ids through ``extra={}`` so a draw or a fan-out can be followed
across the trigger that started it.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

# Derived at import time so newer LogRecord attributes (like taskName) are skipped too
_STANDARD_LOGRECORD_KEYS: frozenset[str] = frozenset(
    logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()
)

CONTEXT_FIELDS = ("trigger_id", "trigger_type", "handler", "event_id", "notification_id")


class JSONFormatter(logging.Formatter):
    """JSON formatter with UTC ISO8601 timestamps taken from the record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        for key, value in vars(record).items():
            if key not in _STANDARD_LOGRECORD_KEYS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        try:
            return json.dumps(log_data, default=str)
        except (TypeError, ValueError):
            return str(log_data)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def _attach_json_handler(logger: logging.Logger, level: int | str) -> logging.Logger:
    if not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False
    return logger


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Attach the JSON handler to the package root logger.

    Every ``eventlottery.*`` logger propagates into it. Call this once from
    the application entry point; library code only asks for named loggers.

    Args:
        level: Level number or name ("DEBUG", "info", ...).
    """
    return _attach_json_handler(logging.getLogger("eventlottery"), level)


def get_logger(name: str = "eventlottery", level: int | str = logging.INFO) -> logging.Logger:
    """Get a standalone logger with JSON formatting.

    Args:
        name: The logger name. Defaults to "eventlottery".
        level: Level number or name.
    """
    return _attach_json_handler(logging.getLogger(name), level)
