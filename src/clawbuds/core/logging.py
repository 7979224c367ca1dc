"""Logging setup for ClawBuds.

Modules log through ``logging.getLogger(__name__)``; this module only
configures the ``clawbuds`` logger tree once per process.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime

ROOT_LOGGER = "clawbuds"

_configured = False


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data)


def configure_logging(level: str | None = None, json_format: bool | None = None) -> logging.Logger:
    """Configure the ``clawbuds`` logger.

    Args:
        level: Log level name; defaults to CLAWBUDS_LOG_LEVEL or INFO
        json_format: Emit JSON lines; defaults to CLAWBUDS_LOG_FORMAT == "json"

    Returns:
        The configured root ``clawbuds`` logger
    """
    global _configured

    logger = logging.getLogger(ROOT_LOGGER)
    level = (level or os.environ.get("CLAWBUDS_LOG_LEVEL", "INFO")).upper()
    logger.setLevel(level)

    if _configured:
        return logger

    if json_format is None:
        json_format = os.environ.get("CLAWBUDS_LOG_FORMAT", "").lower() == "json"

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``clawbuds`` tree."""
    if name.startswith(ROOT_LOGGER):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
