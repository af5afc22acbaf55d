"""Logging setup for the ``atomica`` logger hierarchy.

Every module logs through ``logging.getLogger(__name__)``; nothing is printed
until ``configure_logging`` attaches a handler to the package logger.
"""

from __future__ import annotations

import logging
import sys
from typing import Union

LOGGER_NAME = "atomica"

_FORMAT = "%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s"


def configure_logging(level: Union[int, str] = logging.WARNING) -> logging.Logger:
    """Attach a stderr handler to the ``atomica`` logger and set its level.

    ``level`` is a ``logging`` level or its name ("debug", "INFO", ...).
    Calling this again replaces the handler instead of adding a second one.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        level = resolved

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%H:%M:%S"))
    handler.set_name(LOGGER_NAME)

    root = logging.getLogger(LOGGER_NAME)
    for existing in list(root.handlers):
        if existing.get_name() == LOGGER_NAME:
            root.removeHandler(existing)
    root.setLevel(level)
    root.addHandler(handler)
    return root
