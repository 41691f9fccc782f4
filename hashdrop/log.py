"""Logging configuration for hashdrop."""

import logging
import sys


def setup_logging(debug: bool = False) -> logging.Logger:
    """Send ``hashdrop`` log records to stdout.

    Args:
        debug: Log at DEBUG instead of INFO.

    Returns:
        The configured package logger.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))

    logger = logging.getLogger("hashdrop")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger
