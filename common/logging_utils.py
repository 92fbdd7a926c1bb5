"""Logging utilities for the device health Lambda functions."""

import logging
import sys
from typing import Optional, TextIO

from .config import settings

LOG_FORMAT = "[%(levelname)s] %(asctime)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: Optional[str] = None,
    level: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Return a logger writing ``[LEVEL] timestamp - name - message`` lines.

    Warm Lambda containers import modules once but may call this again, so
    a logger that already has our handler is only re-levelled.

    Args:
        name: Logger name (defaults to root logger).
        level: Log level (defaults to settings.LOG_LEVEL).
        stream: Output stream (defaults to stdout, which CloudWatch captures).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name) if name else logging.getLogger()

    log_level = level or settings.LOG_LEVEL
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if not any(getattr(h, "_device_health", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._device_health = True
        logger.addHandler(handler)

    logger.propagate = False
    return logger
