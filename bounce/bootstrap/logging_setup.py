"""Logging configuration utilities for the relay."""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from bounce.domain.correlation_id import CorrelationLoggerAdapter

LOGGER_NAME = "bounce"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

TRACE = 5
DISABLED = logging.CRITICAL + 10

LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "disabled": DISABLED,
}
LOG_LEVELS = tuple(LEVELS)

logging.addLevelName(TRACE, "TRACE")

SENSITIVE_PATTERNS = [
    re.compile(r"(?i)(authorization|token|password|secret|api[_-]?key)"),
    re.compile(r"\b[A-Fa-f0-9]{32,}\b"),
]

EXTRA_KEYS = (
    "listener",
    "protocol",
    "address",
    "server_name",
    "client",
    "remote_ip",
    "forwarded_for",
    "requested_host",
    "method",
    "route",
    "status_code",
    "redirect",
    "keep_alive",
    "tls",
    "offloaded",
    "destination_host",
    "error_type",
    "error",
    "errno",
    "signal",
    "state",
    "deadline_seconds",
    "in_flight",
    "missing_cert",
    "missing_key",
    "config_file",
    "field",
    "kind",
    "log_level",
    "log_destination",
    "destination",
    "use_json",
)


def redact_sensitive(value: str) -> str:
    """Redact sensitive-looking data from log values."""
    if not value:
        return value

    for pattern in SENSITIVE_PATTERNS:
        if pattern.search(value):
            return "[REDACTED]"

    return value


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Ensure correlation_id field exists in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter with stable key ordering for structured logging."""

    def __init__(self, datefmt: Optional[str] = None):
        super().__init__(datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with stable key ordering."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "event"):
            log_data["event"] = record.event

        for key in EXTRA_KEYS:
            if hasattr(record, key):
                value = getattr(record, key)
                if isinstance(value, str):
                    value = redact_sensitive(value)
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, sort_keys=True, default=str)


def resolve_level(level_name: str) -> int:
    """Translate relay level names (``warn``, ``fatal``...) into numeric levels."""
    level = LEVELS.get(level_name.strip().lower())
    if level is not None:
        return level
    fallback = getattr(logging, level_name.upper(), None)
    if isinstance(fallback, int):
        return fallback
    return logging.INFO


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = True
) -> logging.Handler:
    """Create a stderr, stdout or rotating file handler for the configured logger."""
    target = (destination or "stderr").strip()
    if target.lower() == "stderr":
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
    elif target.lower() == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        target_path = Path(target)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            target_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT
        )
    handler.setLevel(level)

    if use_json:
        handler.setFormatter(JsonFormatter(DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: str = "info", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """Configure the ``bounce`` logger and return a handle for it.

    Calling this again replaces the previous handler, so ``main`` can log
    bootstrap failures in plain text before the real level is known.
    """
    logger = logging.getLogger(LOGGER_NAME)
    numeric_level = resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handler = _build_handler(destination, numeric_level, use_json)
    logger.addHandler(handler)

    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.debug(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "destination": destination or "stderr",
            "use_json": use_json,
        },
    )
    return adapter


def component_logger(
    parent: CorrelationLoggerAdapter, name: str
) -> CorrelationLoggerAdapter:
    """Derive a child handle (``bounce.<name>``) from an explicitly built one."""
    return CorrelationLoggerAdapter(parent.logger.getChild(name), {})
