"""
Structured logging configuration with request ID tracking.

JSON output for production, human-readable lines for development.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from app.config import settings

# LogRecord attributes that are not user supplied `extra` fields
_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "lineno", "funcName", "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "exc_info", "exc_text", "stack_info",
    "taskName", "request_id", "user_id",
}


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for production logging.
    Includes request ID, timestamp, and all extra fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "request_id"):
            log_data["request_id"] = record.request_id

        if hasattr(record, "user_id"):
            log_data["user_id"] = record.user_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


# Context fields shown as short prefixes in development output
_CONTEXT_FIELDS = (
    ("request_id", "req"),
    ("user_id", "user"),
    ("owner_id", "owner"),
    ("accessor_id", "accessor"),
    ("memory_id", "mem"),
)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        parts = [
            f"[{record.levelname:8s}]",
            f"{record.module}:{record.lineno}",
        ]

        for attr, label in _CONTEXT_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                parts.append(f"{label}:{str(value)[:16]}")

        parts.append(record.getMessage())

        if record.exc_info:
            parts.append(f"\n{self.formatException(record.exc_info)}")

        return " | ".join(parts)


def setup_logging(use_json: Optional[bool] = None) -> None:
    """
    Set up application logging.

    Args:
        use_json: If True, use JSON formatting. If None, follow LOG_FORMAT.
    """
    if use_json is None:
        use_json = settings.log_format.lower() == "json"

    formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Quiet third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


# Initialize logging on module import
setup_logging()
