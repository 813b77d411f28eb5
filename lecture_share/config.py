"""Configuration loading utilities for the Lecture Share service."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict


LOGGER = logging.getLogger(__name__)


CONFIG_ENV_VAR = "LECTURE_SHARE_CONFIG"
HOME_STORAGE = Path(".lecture_share") / "storage"


def _ensure_writable_directory(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return os.access(path, os.W_OK | os.X_OK)


@dataclass(frozen=True)
class AppConfig:
    """Runtime locations used by the service."""

    storage_root: Path
    database_file: Path

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_root = preferred_storage
        if not _ensure_writable_directory(preferred_storage):
            home_storage = (Path.home() / HOME_STORAGE).resolve()
            if _ensure_writable_directory(home_storage):
                LOGGER.warning("Storage '%s' is not writable; using '%s'.", preferred_storage, home_storage)
                storage_root = home_storage
            else:
                LOGGER.warning("Storage '%s' is not writable and no fallback is usable.", preferred_storage)

        database_file = (base_path / mapping["database_file"]).resolve()

        if storage_root != preferred_storage:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                database_file = (storage_root / relative_database).resolve()
                LOGGER.warning("Database relocated with storage root to '%s'.", database_file)

        if not _ensure_writable_directory(database_file.parent):
            fallback_database = (storage_root / database_file.name).resolve()
            if fallback_database != database_file:
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database

        return cls(storage_root=storage_root, database_file=database_file)


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from ``config/default.json`` unless told otherwise.

    ``LECTURE_SHARE_CONFIG`` may point at an alternate file when no explicit
    path is passed.
    """

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        override = (os.environ.get(CONFIG_ENV_VAR) or "").strip()
        config_path = Path(override) if override else base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "CONFIG_ENV_VAR", "load_config"]
