from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lecture_share.bootstrap import Bootstrapper
from lecture_share.config import AppConfig
from lecture_share.services.storage import LectureRepository, UserRepository


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/lecture_share.db",
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def user_repository(temp_config: AppConfig) -> UserRepository:
    return UserRepository(temp_config)


@pytest.fixture()
def lecture_repository(temp_config: AppConfig) -> LectureRepository:
    return LectureRepository(temp_config)
