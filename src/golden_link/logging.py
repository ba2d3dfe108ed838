"""Structlog-based logging for golden-link.

Library code logs through get_logger(); no print() outside the CLI.
Per-pair match details go to the troubleshooting logger at debug level.
"""
from __future__ import annotations

from typing import Literal

import logging
import os
import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

TROUBLESHOOTING_LOGGER = "golden_link.troubleshooting"


def configure_logging(level: LogLevel = "INFO") -> None:
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "golden_link"):
    return structlog.get_logger(name)


def get_troubleshooting_logger():
    return structlog.get_logger(TROUBLESHOOTING_LOGGER)


def _env_level() -> LogLevel:
    level = os.getenv("GOLDEN_LINK_LOG_LEVEL", "INFO").upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        return "INFO"
    return level  # type: ignore[return-value]


# Initialize default config
configure_logging(_env_level())
