"""Logging configuration helpers for the console control plane."""
from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    default_level: str = "WARNING",
    env: Mapping[str, str] | None = None,
) -> int:
    """Configure process-wide logging and return the resolved level.

    The level is read from ``MIXCONSOLE_LOG_LEVEL`` and then ``LOG_LEVEL``.
    If neither is set, ``default_level`` is used.  An unknown level name
    falls back to ``default_level`` and logs a warning.
    """

    environment = os.environ if env is None else env
    level_name = (
        environment.get("MIXCONSOLE_LOG_LEVEL") or environment.get("LOG_LEVEL") or default_level
    ).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = getattr(logging, default_level.upper(), logging.WARNING)
        invalid_level = level_name
    else:
        invalid_level = None

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )

    if invalid_level is not None:
        logging.getLogger(__name__).warning(
            "Invalid log level '%s'; using %s", invalid_level, logging.getLevelName(level)
        )

    return level


__all__ = ["configure_logging", "LOG_FORMAT", "DATE_FORMAT"]
