# aicounsel/utils/logging.py
"""
Loggers for the aicounsel package.

Handlers live on the package logger ("aicounsel") only; module loggers are
its children and propagate to it, so every module shares one log file.

Environment:
- AICOUNSEL_LOG_DIR   : directory of aicounsel.log (default: aicounsel/logs)
- AICOUNSEL_LOG_LEVEL : file log level (default: INFO)
"""

import logging
import os
from pathlib import Path

from aicounsel.config.settings import BASE_DIR

PACKAGE_LOGGER = "aicounsel"
LOG_FILENAME = "aicounsel.log"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_dir() -> Path:
    return Path(os.getenv("AICOUNSEL_LOG_DIR", "").strip() or BASE_DIR / "aicounsel" / "logs")


def _level_from_env() -> int:
    level = logging.getLevelName(os.getenv("AICOUNSEL_LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _configure_package_logger() -> logging.Logger:
    root = logging.getLogger(PACKAGE_LOGGER)
    if root.handlers:
        return root

    level = _level_from_env()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    directory = log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    to_file = logging.FileHandler(directory / LOG_FILENAME, encoding="utf-8")
    to_file.setLevel(level)
    to_file.setFormatter(formatter)
    root.addHandler(to_file)

    # the console screen shares stdout; only problems go to stderr
    to_console = logging.StreamHandler()
    to_console.setLevel(logging.WARNING)
    to_console.setFormatter(formatter)
    root.addHandler(to_console)
    return root


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Logger for ``name``, nested under the package logger."""
    _configure_package_logger()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
