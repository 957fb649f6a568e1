"""
Logging Setup — console output plus an append-only server.log under LOG_DIR.
"""
import logging
import os

from stableupi.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging() -> logging.Logger:
    """Configure the 'stableupi' logger tree once; safe to call repeatedly."""
    settings = get_settings()
    logger = logging.getLogger("stableupi")
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(settings.LOG_LEVEL.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    os.makedirs(settings.LOG_DIR, exist_ok=True)
    file_handler = logging.FileHandler(os.path.join(settings.LOG_DIR, "server.log"))
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False
    logger._configured = True
    return logger
