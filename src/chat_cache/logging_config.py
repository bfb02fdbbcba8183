"""Logging setup for the service process."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the ``chat_cache`` logger hierarchy.

    Args:
        level: Log level name (e.g. "DEBUG", "INFO")
    """
    logger = logging.getLogger("chat_cache")
    logger.setLevel(level.upper())

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
