"""Logging helpers."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "turnframe"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def parse_level(name: str | int | None, default: int = logging.INFO) -> int:
    if isinstance(name, int):
        return name
    if not name:
        return default
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else default


def setup_logging(
    log_dir: str = "logs",
    level: int = logging.INFO,
    console: bool = False,
) -> tuple[logging.Logger, str]:
    """Attach a rotating file handler (and optionally stderr) to the package logger.

    Safe to call more than once; handlers are only installed the first time.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "turnframe.log")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not logger.handlers:
        fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        file_handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3)
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)
        if console:
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(fmt)
            stream_handler.setLevel(logging.WARNING)
            logger.addHandler(stream_handler)

    return logger, log_path
