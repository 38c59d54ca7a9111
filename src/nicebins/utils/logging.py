"""
Logging helpers for nicebins.

Every nicebins module logs through ``get_logger(__name__)``, so all records
sit under the ``nicebins`` logger. The package itself installs only a
NullHandler there and never configures output; a host application's own
logging setup decides where records go.

``configure_logging`` is for scripts and notebooks that want to watch
grouping and event-bus activity directly. It attaches one stderr handler to
the ``nicebins`` logger (not the root logger) and takes its level from the
argument, then ``NICEBINS_LOG_LEVEL``, then INFO::

    from nicebins.utils.logging import configure_logging
    configure_logging(level="DEBUG")

No log files are written.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOGGER_NAME = "nicebins"
LOG_LEVEL_ENV_VAR = "NICEBINS_LOG_LEVEL"

# Default format for nicebins logs
DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d:%(funcName)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[Union[str, int]]) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")
    if isinstance(level, int):
        return level
    # unknown names fall back to INFO
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _is_stderr_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr


def configure_logging(
    level: Optional[Union[str, int]] = None,
    *,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    force: bool = False,
) -> None:
    """Send ``nicebins`` records to stderr.

    Args:
        level: Level name or number. Defaults to ``NICEBINS_LOG_LEVEL``, then INFO.
        fmt: Record format, DEFAULT_FMT when omitted.
        datefmt: Timestamp format, DEFAULT_DATEFMT when omitted.
        force: Drop the handlers already on the ``nicebins`` logger first.
            Without it an existing stderr handler is reused and only the
            level changes.
    """
    resolved = _resolve_level(level)
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(resolved)

    if force:
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()

    existing = [h for h in package_logger.handlers if _is_stderr_handler(h)]
    if existing:
        for handler in existing:
            handler.setLevel(resolved)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_FMT, datefmt=datefmt or DEFAULT_DATEFMT))
    package_logger.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger called ``name``, or the ``nicebins`` package logger when None."""
    return logging.getLogger(name if name is not None else LOGGER_NAME)
