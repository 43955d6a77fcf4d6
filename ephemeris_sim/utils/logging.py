"""Logging setup for the command line."""

import logging
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s"


def configure_logging(level: Union[int, str] = logging.WARNING):
    """Send the package's log records to stderr at ``level``.

    Only the ``ephemeris_sim`` logger is configured; the library itself never
    installs handlers.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")
    logger = logging.getLogger("ephemeris_sim")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
