"""
Logging configuration.

Emits human-readable logs on stderr and, optionally, JSON logs to a
rotating file. JSON logs include:
- Timestamp
- Level
- Logger name
- Spec / build / trace identifiers when passed through `extra`
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any

# Structured fields copied from `extra={...}` into JSON output
STRUCTURED_FIELDS = ("spec_id", "build", "config_hash", "rules_hash", "event_type")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, sort_keys=True)


class HumanFormatter(logging.Formatter):
    """Human-readable format with optional colors."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        prefix = f"{timestamp} {record.levelname[:4]} [{record.name}]"

        spec_id = getattr(record, "spec_id", None)
        if spec_id:
            prefix += f" spec={spec_id}"

        line = f"{prefix}: {record.getMessage()}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, "")
            line = f"{color}{line}{self.RESET}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the aplgap package.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Emit JSON on the console instead of human-readable lines
        log_file: Optional path for a rotating JSON log file
        max_bytes: Max size per log file
        backup_count: Number of backup files to keep
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger("aplgap")
    logger.setLevel(numeric_level)
    logger.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    logger.addHandler(console)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)
