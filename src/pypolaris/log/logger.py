#!/usr/bin/env python3

"""loguru setup for applications and the CLI.

Library modules log through the standard ``logging`` module. ``setup_logger``
routes those records into loguru so that everything ends up in one sink with
one format.
"""

from __future__ import annotations

import inspect
import logging
import os
import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | <level>{message}</level>"
)

DEFAULT_LOG_LEVEL_ENV = "RUBRIK_POLARIS_LOGLEVEL"

_LEVELS = {
    "trace": "TRACE",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
    "fatal": "CRITICAL",
    "critical": "CRITICAL",
}


class InterceptHandler(logging.Handler):
    """Forward standard ``logging`` records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside of the logging module.
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def parse_log_level(text: str) -> str:
    """Map a log level name to a loguru level.

    Args:
        text: One of trace, debug, info, warn, warning, error, fatal or
            critical, case-insensitive.

    Returns:
        str: loguru level name.

    Raises:
        ValueError: Unknown level.
    """
    level = _LEVELS.get(text.strip().lower())
    if level is None:
        raise ValueError(f"invalid log level: {text}")
    return level


def setup_logger(level: str = "WARNING", sink: Any = None) -> None:
    """Install the pypolaris loguru sink.

    Replaces existing loguru sinks and intercepts standard ``logging`` records
    so library logs share the sink.

    Args:
        level: Log level name, see ``parse_log_level``.
        sink: loguru sink, defaults to ``sys.stderr``.
    """
    loguru_level = parse_log_level(level)
    logger.remove()
    logger.add(sink if sink is not None else sys.stderr, level=loguru_level, colorize=sink is None, format=LOG_FORMAT)

    # TRACE has no standard logging equivalent, DEBUG lets everything through.
    std_level = logging.DEBUG if loguru_level == "TRACE" else logging.getLevelName(loguru_level)
    logging.basicConfig(handlers=[InterceptHandler()], level=std_level, force=True)


def set_log_level_from_env(env_name: str = DEFAULT_LOG_LEVEL_ENV, default: str = "WARNING") -> str:
    """Set up logging with the level read from the environment.

    Args:
        env_name: Environment variable holding the level.
        default: Level used when the variable is unset or empty.

    Returns:
        str: loguru level name in effect.
    """
    level = os.getenv(env_name) or default
    setup_logger(level)
    return parse_log_level(level)
