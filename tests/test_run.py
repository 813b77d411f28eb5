"""Tests for the run.py entrypoint."""

from __future__ import annotations

from types import SimpleNamespace

from typer.testing import CliRunner

import run


runner = CliRunner()


def _setup_serve(monkeypatch, tmp_path, root_path):
    captured = {}

    monkeypatch.setattr(run, "initialize_app", lambda: SimpleNamespace(storage_root=tmp_path))
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root, level: captured.update(level=level))
    monkeypatch.setattr(run, "LectureRepository", lambda config: "lectures")
    monkeypatch.setattr(run, "UserRepository", lambda config: "users")

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def _create_app(lectures, users, *, config, root_path):
        captured["repositories"] = (lectures, users)
        captured["app_root_path"] = root_path
        return dummy_app

    monkeypatch.setattr(run, "create_app", _create_app)

    class DummyConfig:
        def __init__(self, app, **kwargs):
            captured["app"] = app
            captured["config_kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)

    run.serve(host="0.0.0.0", port=9000, root_path=root_path, log_level="debug")

    captured["app_state_server"] = dummy_app.state.server
    return captured


def test_serve_wires_repositories_and_root_path(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, root_path="share/")

    assert captured["repositories"] == ("lectures", "users")
    assert captured["app_root_path"] == "/share"
    assert captured["config_kwargs"]["root_path"] == "/share"
    assert captured["config_kwargs"]["port"] == 9000
    assert captured["server_run"] is True
    assert captured["app_state_server"] is captured["server_instance"]


def test_serve_without_root_path(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, root_path="  ")

    assert captured["app_root_path"] == ""
    assert captured["level"] == 10


def test_add_and_list_users(monkeypatch, temp_config):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)

    created = runner.invoke(run.cli, ["add-user", "ada", "ada@school.edu", "--role", "teacher", "--name", "Ada"])
    assert created.exit_code == 0
    assert "Created teacher ada" in created.output

    duplicate = runner.invoke(run.cli, ["add-user", "ada", "other@school.edu"])
    assert duplicate.exit_code == 1

    teachers = runner.invoke(run.cli, ["list-users", "--role", "teacher"])
    assert teachers.exit_code == 0
    assert "ada@school.edu" in teachers.output

    students = runner.invoke(run.cli, ["list-users"])
    assert "No students registered." in students.output


def test_init_db_reports_database_location(monkeypatch, temp_config):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)

    result = runner.invoke(run.cli, ["init-db"])

    assert result.exit_code == 0
    assert str(temp_config.database_file) in result.output


def test_overview_renders_teachers(monkeypatch, temp_config, user_repository, lecture_repository):
    teacher = user_repository.create_user("ada", "ada@school.edu", role="teacher", name="Ada")
    student = user_repository.create_user("bo", "bo@school.edu", role="student", name="Bo")
    user_repository.add_roster_edge(teacher.id, student.id)
    lecture_repository.add_lecture(
        user_id=teacher.id,
        teacher_id=teacher.id,
        filename="week1.md",
        content="# Week 1",
        file_size=8,
        is_public=True,
    )
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)

    result = runner.invoke(run.cli, ["overview"])

    assert result.exit_code == 0
    assert "Ada" in result.output
    assert "week1.md" in result.output
    assert "Bo" in result.output


def test_overview_without_teachers(monkeypatch, temp_config):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)

    result = runner.invoke(run.cli, ["overview"])

    assert result.exit_code == 0
    assert "No teachers are registered yet" in result.output
