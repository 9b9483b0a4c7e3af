"""
Structured logging for the system recorder.

This module provides JSON-formatted structured logging. Standard output is the
interactive console, so by default log records go to a rotating log file and
only reach stdout when explicitly enabled.

Features:
- JSON-formatted log output for machine-readable logs
- Consistent field structure across all log entries
- Rotating file output with optional size limits
- Thread-safe logging (records arrive from executor threads)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sysrecorder.config import LoggingConfig

ROOT_LOGGER_NAME = "sysrecorder"

# Default log format for fallback
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
}


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each log record is formatted as a JSON object with consistent fields:
    - timestamp: ISO 8601 formatted timestamp in UTC
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - Additional fields from the record's extra dict
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string representation of the log record.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Fields passed through the `extra` parameter
        for key in set(record.__dict__.keys()) - _RESERVED_RECORD_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return JSONFormatter()
    return logging.Formatter(DEFAULT_LOG_FORMAT)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
    log_path: str | Path | None = None,
) -> logging.Logger:
    """
    Configure the logging system for the recorder.

    Args:
        config: Optional LoggingConfig object with logging settings.
            If provided, overrides the keyword parameters.
        level: Default log level if no config is provided.
        json_format: Whether to use JSON formatting (default: True).
        log_to_stdout: Whether to log to stdout (default: True).
        log_path: Optional log file path.

    Returns:
        The root logger configured for the sysrecorder package.

    Example:
        >>> from sysrecorder.logging import setup_logging
        >>> logger = setup_logging(level="DEBUG", log_to_stdout=False)
        >>> logger.info("Recorder started", extra={"db_path": "sysinfo.db"})
    """
    max_bytes = 0
    backup_count = 0
    if config is not None:
        log_level = "DEBUG" if config.debug_mode else config.level.upper()
        json_format = True
        log_to_stdout = config.log_to_stdout
        log_path = config.app_log_path
        max_bytes = config.max_bytes or 0
        backup_count = config.backup_count or 0
    else:
        log_level = level.upper()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove existing handlers to avoid duplicates
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    handlers: list[logging.Handler] = []

    if log_to_stdout:
        handlers.append(logging.StreamHandler(sys.stdout))

    if log_path:
        path = Path(log_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    if not handlers:
        handlers.append(logging.NullHandler())

    for handler in handlers:
        handler.setLevel(getattr(logging, log_level, logging.INFO))
        handler.setFormatter(_make_formatter(json_format))
        logger.addHandler(handler)

    # Prevent propagation to root logger to avoid duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: The name for the logger, typically __name__ of the calling module.
            The "sysrecorder." prefix is added automatically if not present.

    Returns:
        A logger in the sysrecorder hierarchy.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
