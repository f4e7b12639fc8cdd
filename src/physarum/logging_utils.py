"""
Utilities to configure and retrieve simulation loggers.

Every module logs under the ``physarum`` namespace so host code can tune
the whole engine with a single logger.
"""
from __future__ import annotations

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
LOG_NAMESPACE = "physarum"


def _coerce_level(value: Any) -> int:
    """
    Return a valid logging level from either a string or an integer.
    Defaults to logging.INFO when the input is not recognised.
    """
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        level = getattr(logging, value.upper(), logging.INFO)
        if isinstance(level, int):
            return level
    return logging.INFO


def configure_logging(level: Any = "INFO", to_console: bool = True) -> None:
    """
    Configure the ``physarum`` logger.

    Parameters
    ----------
    level:
        Logging level as a name ("DEBUG", "INFO", ...) or an integer.
    to_console:
        Echo records to stderr. When False a NullHandler swallows them.
    """
    resolved = _coerce_level(level)
    handler: logging.Handler
    if to_console:
        handler = logging.StreamHandler()
    else:
        handler = logging.NullHandler()
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger(LOG_NAMESPACE)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(resolved)


def get_logger(component: str) -> logging.Logger:
    """
    Return a namespaced logger for the given component.
    """
    component = component.strip(".")
    name = f"{LOG_NAMESPACE}.{component}" if component else LOG_NAMESPACE
    return logging.getLogger(name)
