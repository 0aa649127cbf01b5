"""
DocChat - Logging
==================
Logger factory shared by every DocChat module.

Level resolution, highest priority first:
  • explicit ``level`` argument
  • ``settings.LOG_LEVEL``
  • ``settings.ENV``: ``"dev"`` → DEBUG, ``"prod"`` → WARNING

Log lines carry a bracketed component tag (``[CHAT]``, ``[RAG]``,
``[MEMORY]``, ``[INGEST]`` ...) and, for conversation operations, the
session id, so one request can be followed across components.

Usage:
    from docchat.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[CHAT] session=%s answered in %.1fms", session_id, ms)
"""

import logging
import sys

from docchat.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _default_level() -> int:
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL)
    return _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a named logger writing to stdout with the DocChat format.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit logging level override.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    resolved_level = level if level is not None else _default_level()
    logger = logging.getLogger(name)

    # Configure once per name; repeated imports reuse the same handler
    if not logger.handlers:
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(resolved_level)
        handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)

        logger.propagate = False

    return logger
