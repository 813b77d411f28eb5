import json
from pathlib import Path

import lecture_share.config as config_module
from lecture_share.config import AppConfig, load_config


def test_paths_resolve_relative_to_base(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "storage/lecture_share.db"},
        base_path=tmp_path,
    )

    assert config.storage_root == (tmp_path / "storage").resolve()
    assert config.database_file == (tmp_path / "storage" / "lecture_share.db").resolve()
    assert config.storage_root.is_dir()


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "storage/lecture_share.db"},
        base_path=tmp_path,
    )

    expected_storage = (home_dir / ".lecture_share" / "storage").resolve()
    assert config.storage_root == expected_storage
    assert config.database_file == (expected_storage / "lecture_share.db").resolve()
    assert expected_storage.exists()


def test_database_outside_storage_falls_back_into_storage(tmp_path: Path) -> None:
    blocker = tmp_path / "db"
    blocker.write_text("occupied", encoding="utf-8")

    config = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "db/lecture_share.db"},
        base_path=tmp_path,
    )

    assert config.database_file == (config.storage_root / "lecture_share.db").resolve()


def test_load_config_honours_environment_override(tmp_path: Path, monkeypatch) -> None:
    config_file = tmp_path / "custom.json"
    config_file.write_text(
        json.dumps(
            {
                "storage_root": str(tmp_path / "data"),
                "database_file": str(tmp_path / "data" / "custom.db"),
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv(config_module.CONFIG_ENV_VAR, str(config_file))

    config = load_config()

    assert config.storage_root == (tmp_path / "data").resolve()
    assert config.database_file.name == "custom.db"
