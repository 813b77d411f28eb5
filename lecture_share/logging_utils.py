"""Logging setup shared by the CLI and the web application."""

from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path
from typing import Iterable


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "lecture_share.log"


def resolve_log_level(name: str | int | None, default: int = logging.INFO) -> int:
    """Translate a level name such as ``"debug"`` into its numeric value."""

    if name is None:
        return default
    if isinstance(name, int):
        return name
    candidate = logging.getLevelName(name.strip().upper())
    return candidate if isinstance(candidate, int) else default


def configure_logging(level: int = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> Logger:
    """Attach *handlers* (or a formatted stream handler) to the root logger."""

    logger = logging.getLogger()
    logger.setLevel(level)

    if handlers is None:
        handlers = [logging.StreamHandler()]

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    for handler in handlers:
        if handler.formatter is None:
            handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_log_file_path(storage_root: Path) -> Path:
    return storage_root / LOG_FILE_NAME


__all__ = [
    "DEFAULT_LOG_FORMAT",
    "LOG_FILE_NAME",
    "configure_logging",
    "get_log_file_path",
    "resolve_log_level",
]
