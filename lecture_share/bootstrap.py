"""Bootstrap logic that prepares the storage directory and the SQLite schema."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)


SCHEMA = """
PRAGMA foreign_keys = ON;
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT '',
    role TEXT NOT NULL CHECK (role IN ('teacher', 'student')),
    avatar TEXT,
    password_hash TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS lectures (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    teacher_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    original_name TEXT NOT NULL,
    file_type TEXT NOT NULL DEFAULT 'text/plain',
    file_size TEXT NOT NULL DEFAULT '0',
    content TEXT NOT NULL,
    is_public INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY(teacher_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_lectures_teacher_created
    ON lectures(teacher_id, created_at);
CREATE INDEX IF NOT EXISTS idx_lectures_created ON lectures(created_at);

CREATE TABLE IF NOT EXISTS lecture_permissions (
    lecture_id TEXT NOT NULL,
    student_id TEXT NOT NULL,
    PRIMARY KEY (lecture_id, student_id),
    FOREIGN KEY(lecture_id) REFERENCES lectures(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_lecture_permissions_student
    ON lecture_permissions(student_id);

CREATE TABLE IF NOT EXISTS teacher_students (
    teacher_id TEXT NOT NULL,
    student_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (teacher_id, student_id),
    FOREIGN KEY(teacher_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY(student_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

# Columns introduced after the first schema revision.
_LECTURE_MIGRATIONS = (
    ("summary_data", "TEXT"),
    ("updated_at", "TEXT"),
)


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        self._ensure_database()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        storage_root = self._config.storage_root
        if not config_module._ensure_writable_directory(storage_root):
            raise BootstrapError(f"Storage directory '{storage_root}' is not writable")
        LOGGER.debug("Ensured directory exists: %s", storage_root)

        database_parent = self._config.database_file.parent
        if not config_module._ensure_writable_directory(database_parent):
            raise BootstrapError(f"Database directory '{database_parent}' is not writable")

    def _ensure_database(self) -> None:
        LOGGER.debug("Ensuring database schema at %s", self._config.database_file)
        try:
            connection = sqlite3.connect(self._config.database_file)
        except sqlite3.Error as error:
            raise BootstrapError(f"Could not open database: {error}") from error
        try:
            cursor = connection.cursor()
            cursor.executescript(SCHEMA)
            connection.commit()

            for column, column_type in _LECTURE_MIGRATIONS:
                try:
                    cursor.execute(f"ALTER TABLE lectures ADD COLUMN {column} {column_type}")
                except sqlite3.OperationalError as error:
                    if "duplicate column name" not in str(error).lower():
                        raise
                else:
                    LOGGER.info("Added lectures.%s column", column)

            cursor.execute(
                "UPDATE lectures SET updated_at = created_at WHERE updated_at IS NULL"
            )
            connection.commit()
        finally:
            connection.close()


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "SCHEMA", "initialize_app"]
