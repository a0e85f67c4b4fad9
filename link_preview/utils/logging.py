from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Chatty at INFO; attempt and fallback logs get lost under them.
_NOISY_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "uvicorn.access")


def resolve_level(level: str | int | None) -> int:
    """Level from an int, a level name, or PREVIEW_LOG_LEVEL; unknown names mean INFO."""
    if level is None:
        level = os.getenv("PREVIEW_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int | None = None) -> int:
    """
    Configure root logging for the CLI and API server. Returns the level applied.
    """
    resolved = resolve_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return resolved
