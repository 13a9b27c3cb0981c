"""
clai Structured Logging

Provides a configured logger for clai using stdlib logging with
structured context. Diagnostics go to stderr so they never interleave
with the streamed answer on stdout.

Usage:
    from clai.logging import get_logger

    logger = get_logger("clai.engine")
    logger.info("Round finished", extra={"round": 2, "provider": "anthropic"})

For machine-readable output:
    from clai.logging import configure_logging
    configure_logging(json_output=True, level="DEBUG")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_EXTRA_KEYS = ("tool_name", "provider", "model", "round", "action", "duration_ms")


class ClaiFormatter(logging.Formatter):
    """Structured log formatter for clai.

    Outputs either human-readable or JSON format depending on configuration.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self._json_output:
            return json.dumps(log_data, default=str)

        extra_keys = {
            k: v
            for k, v in log_data.items()
            if k not in ("timestamp", "level", "logger", "message", "exception")
        }
        extra_str = ""
        if extra_keys:
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in extra_keys.items())

        line = (
            f"[{log_data['timestamp']}] {record.levelname:8s} "
            f"{record.name}: {record.getMessage()}{extra_str}"
        )
        if "exception" in log_data:
            line += "\n" + log_data["exception"]
        return line


def configure_logging(
    level: str = "WARNING",
    json_output: bool = False,
) -> None:
    """Configure clai logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output one JSON object per line.
    """
    root_logger = logging.getLogger("clai")
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ClaiFormatter(json_output=json_output))
    root_logger.addHandler(handler)

    root_logger.propagate = False


def get_logger(name: str = "clai") -> logging.Logger:
    """Get a clai logger instance.

    Args:
        name: Logger name (usually module path like "clai.engine.loop").
    """
    return logging.getLogger(name)


configure_logging()
