"""Logging setup for the tangram engine."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the package logger.

    Args:
        level: Log level name, e.g. "DEBUG" to trace symmetry branches and
            anchor decisions.
    """
    logger = logging.getLogger("tangram_engine")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
