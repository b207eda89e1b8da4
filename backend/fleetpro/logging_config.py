"""Logging setup shared by the API process and the CLI entry point."""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def build_logging_config(level: str = "INFO") -> Dict[str, Any]:
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
        },
        "loggers": {
            "fleetpro": {"level": level},
            "uvicorn.access": {"level": "WARNING"},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))
    logging.getLogger(__name__).debug("Logging configured at %s", level.upper())
