"""
YoursAI - Logging
==================
Pre-configured logger factory for consistent, readable log output
across all YoursAI modules.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (maximum detail)
  • ``"prod"`` → WARNING level (errors & warnings only)

``settings.LOG_LEVEL`` (e.g. ``"INFO"``) overrides the mapping when set.

Usage:
    from yoursai.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Something happened")
"""

import logging
import sys

from yoursai.config.settings import settings

# ── Resolve default level from environment mode ───────────────────────
_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}


def _default_level() -> int:
    if settings.LOG_LEVEL:
        level = logging.getLevelName(settings.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


_DEFAULT_LEVEL = _default_level()


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Create and return a named logger with a standardised formatter.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit logging level override.
               If *None*, the level is derived from settings.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    # Handlers are attached once per logger name
    if not logger.handlers:
        logger.setLevel(resolved_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved_level)

        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        logger.propagate = False

    return logger
