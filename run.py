"""Entry-point for the Lecture Share service."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from lecture_share.bootstrap import initialize_app
from lecture_share.logging_utils import (
    DEFAULT_LOG_FORMAT,
    configure_logging,
    get_log_file_path,
    resolve_log_level,
)
from lecture_share.services.errors import ConflictError
from lecture_share.services.storage import LectureRepository, UserRepository
from lecture_share.ui import OverviewUI
from lecture_share.web import create_app


LOGGER = logging.getLogger("lecture_share.cli")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


cli = typer.Typer(add_completion=False, help="Lecture Share management commands")


class Role(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


def _prepare_logging(storage_root: Path, level: int = logging.INFO) -> None:
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(get_log_file_path(storage_root), encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(level, handlers=[file_handler, stream_handler])


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip().rstrip("/")
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None, log_level="info")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="LECTURE_SHARE_ROOT_PATH",
    ),
    log_level: str = typer.Option("info", help="Logging level (debug, info, warning, ...)"),
) -> None:
    """Run the HTTP API with uvicorn."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root, resolve_log_level(log_level))

    normalized_root = _normalize_root_path(root_path)
    app = create_app(
        LectureRepository(app_config),
        UserRepository(app_config),
        config=app_config,
        root_path=normalized_root,
    )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving Lecture Share on http://%s:%s%s", host, port, normalized_root or "/")
    server.run()


@cli.command("init-db")
def init_db() -> None:
    """Create the storage directory and database schema."""

    app_config = initialize_app()
    typer.echo(f"Database ready at {app_config.database_file}")


@cli.command("add-user")
def add_user(
    username: str = typer.Argument(..., help="Unique login name"),
    email: str = typer.Argument(..., help="Unique e-mail address"),
    role: Role = typer.Option(Role.STUDENT, "--role", "-r", help="Account role"),
    name: str = typer.Option("", "--name", "-n", help="Display name"),
) -> None:
    """Register a teacher or student account."""

    app_config = initialize_app()
    repository = UserRepository(app_config)
    try:
        user = repository.create_user(username, email, role=role.value, name=name)
    except ConflictError as error:
        typer.echo(f"Could not create user: {error.message}", err=True)
        raise typer.Exit(code=1) from error
    typer.echo(f"Created {user.role} {user.username} with id {user.id}")


@cli.command("list-users")
def list_users(
    role: Role = typer.Option(Role.STUDENT, "--role", "-r", help="Role to list"),
) -> None:
    """Print the users holding ``role``, newest first."""

    app_config = initialize_app()
    users = UserRepository(app_config).find_by_role(role.value)
    if not users:
        typer.echo(f"No {role.value}s registered.")
        return
    for user in users:
        typer.echo(f"{user.id}\t{user.username}\t{user.email}\t{user.name}")


@cli.command()
def overview() -> None:
    """Render teachers, their lectures and rosters in the terminal."""

    app_config = initialize_app()
    OverviewUI(LectureRepository(app_config), UserRepository(app_config)).run()


if __name__ == "__main__":
    cli()
