# ABOUTME: Configures the loguru sink used by the engine, the CLI, and the assistant.
# ABOUTME: Replaces loguru's default handler with one compact stderr sink.

import os
import sys

from loguru import logger

from .config import LOG_LEVEL_ENV

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{line} | {message}"


def configure_logging(level: str = None, sink=sys.stderr) -> int:
    """Reset loguru handlers and add one sink; returns the handler id."""
    level = (level or os.environ.get(LOG_LEVEL_ENV, "INFO")).upper()
    logger.remove()
    return logger.add(sink, level=level, format=LOG_FORMAT)
