"""Logging setup shared by the realtime client scripts."""

from __future__ import annotations

import copy
import logging.config
from typing import Any

from app.config import get_settings


LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        "spacemarket.realtime.connection": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "socketio": {"level": "WARNING"},
        "engineio": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
}


def configure_logging(level: str | None = None) -> None:
    """Apply ``LOGGING_CONFIG`` with the root level taken from settings."""

    config = copy.deepcopy(LOGGING_CONFIG)
    resolved = (level or get_settings().log_level).upper()
    config["root"]["level"] = resolved
    config["loggers"]["spacemarket.realtime.connection"]["level"] = resolved
    logging.config.dictConfig(config)
