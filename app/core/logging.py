# app/core/logging.py
"""Logging setup shared by the API, the pipelines and the CLI."""
import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
DATE_FORMAT = "%H:%M:%S"

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with a single stream handler.

    Calling it again only changes the level.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    global _configured
    root = logging.getLogger()
    root.setLevel(level.upper())

    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
