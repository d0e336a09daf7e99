"""Logging utilities for tjsdoc runs."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "tjsdoc"

VERBOSE = 15
TRACE = 5

logging.addLevelName(VERBOSE, "VERBOSE")
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS: dict[str, int] = {
    "off": logging.CRITICAL + 10,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "verbose": VERBOSE,
    "debug": logging.DEBUG,
    "trace": TRACE,
}


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the tjsdoc hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def resolve_level(level: str | int) -> int:
    """Translate a configured level name into a logging level."""
    if isinstance(level, int):
        return level
    try:
        return LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None


def configure_logging(
    *, level: str | int = "info", log_file: Path | None = None
) -> logging.Logger:
    """Configure the tjsdoc logger with console output and optional file sink."""
    numeric = resolve_level(level)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(numeric)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when a run is started multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(numeric)
    stream_handler.setFormatter(logging.Formatter("[tjsdoc] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


def set_level(level: str | int) -> None:
    """Change the level of the tjsdoc logger and its handlers in place."""
    numeric = resolve_level(level)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(numeric)
    for handler in logger.handlers:
        handler.setLevel(numeric)


__all__ = ["LOG_LEVELS", "TRACE", "VERBOSE", "configure_logging", "get_logger", "resolve_level", "set_level"]
