"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGING_CONFIGURED = False

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(
            level=logging.INFO,
            format=LOG_FORMAT,
            datefmt=DATE_FORMAT,
        )
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)


def log_header(logger: logging.Logger, title: str) -> None:
    """Log a stage banner."""
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)
