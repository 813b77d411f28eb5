"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

from ..config import AppConfig
from .errors import ConflictError, StorageError


LOGGER = logging.getLogger(__name__)

ROLE_TEACHER = "teacher"
ROLE_STUDENT = "student"
ROLES = frozenset({ROLE_TEACHER, ROLE_STUDENT})

# SQLite caps the number of bound parameters per statement.
_IN_CLAUSE_CHUNK = 500


@dataclass(frozen=True)
class UserRecord:
    """A user projection. Credentials are never loaded into it."""

    id: str
    username: str
    email: str
    name: str
    role: str
    avatar: Optional[str]
    created_at: str


@dataclass(frozen=True)
class RosterEntry:
    teacher_id: str
    student_id: str
    created_at: str


@dataclass(frozen=True)
class Enrollment:
    student: UserRecord
    enrolled_at: str


@dataclass
class LectureRecord:
    id: str
    user_id: str
    teacher_id: str
    filename: str
    original_name: str
    file_type: str
    file_size: int
    content: str
    summary_data: Any
    is_public: bool
    created_at: str
    updated_at: Optional[str]
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    teacher_name: Optional[str] = None
    teacher_email: Optional[str] = None


def new_identifier() -> str:
    return uuid.uuid4().hex


def format_timestamp(value: datetime | str | None = None) -> str:
    """Return an ISO-8601 UTC timestamp that sorts lexicographically."""

    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class _SQLiteRepository:
    """Connection handling and DB event instrumentation shared by repositories."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting DB events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Emit a ``DB_QUERY`` event with the duration of the wrapped block."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        try:
            yield event_payload
        except Exception as exc:
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", exc.__class__.__name__)
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            event_payload.setdefault("status", "ok")
            filtered = {key: value for key, value in event_payload.items() if value is not None}
            self._event_emitter("DB_QUERY", action, payload=filtered, duration_ms=duration_ms)

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:180] + ("…" if len(collapsed) > 180 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | None = None,
    ) -> sqlite3.Cursor:
        params: Tuple[Any, ...] = tuple(parameters or ())
        LOGGER.debug(
            "Executing %s with %s parameter(s)",
            self._summarize_sql(statement),
            len(params),
        )
        return connection.execute(statement, params)

    def _connect(self) -> sqlite3.Connection:
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as error:
            raise StorageError(f"Could not open database: {error}") from error
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose work is committed as one transaction."""

        connection = self._connect()
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as error:
            connection.rollback()
            LOGGER.error("SQLite operation failed: %s", error)
            raise StorageError(f"{error.__class__.__name__}: {error}") from error
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()


# ---------------------------------------------------------------------------
# Users and rosters
# ---------------------------------------------------------------------------
_USER_COLUMNS = "id, username, email, name, role, avatar, created_at"


def _user_from_row(row: sqlite3.Row, *, prefix: str = "") -> UserRecord:
    return UserRecord(
        id=row[f"{prefix}id"],
        username=row[f"{prefix}username"],
        email=row[f"{prefix}email"],
        name=row[f"{prefix}name"] or "",
        role=row[f"{prefix}role"],
        avatar=row[f"{prefix}avatar"],
        created_at=row[f"{prefix}created_at"],
    )


class UserRepository(_SQLiteRepository):
    """Users and the teacher→student roster edges."""

    def create_user(
        self,
        username: str,
        email: str,
        *,
        role: str,
        name: str = "",
        avatar: Optional[str] = None,
        password_hash: Optional[str] = None,
        user_id: Optional[str] = None,
        created_at: datetime | str | None = None,
    ) -> UserRecord:
        if role not in ROLES:
            raise ValueError(f"Unsupported role: {role!r}")
        identifier = user_id or new_identifier()
        timestamp = format_timestamp(created_at)
        LOGGER.debug("Creating %s '%s' (id=%s)", role, username, identifier)
        with self._track_db_event("users.insert", table="users", role=role) as event:
            with self._transaction() as connection:
                try:
                    self._execute(
                        connection,
                        """
                        INSERT INTO users(id, username, email, name, role, avatar, password_hash, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (identifier, username, email, name, role, avatar, password_hash, timestamp),
                    )
                except sqlite3.IntegrityError as error:
                    raise ConflictError("User already exists", details=str(error)) from error
            event["user_id"] = identifier
        return UserRecord(
            id=identifier,
            username=username,
            email=email,
            name=name,
            role=role,
            avatar=avatar,
            created_at=timestamp,
        )

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._track_db_event("users.get", table="users") as event:
            with self._transaction() as connection:
                row = self._execute(
                    connection,
                    f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
                    (user_id,),
                ).fetchone()
            event["found"] = row is not None
        return _user_from_row(row) if row else None

    def find_by_role(self, role: str) -> List[UserRecord]:
        with self._track_db_event("users.find_by_role", table="users", role=role) as event:
            with self._transaction() as connection:
                rows = self._execute(
                    connection,
                    f"""
                    SELECT {_USER_COLUMNS} FROM users
                    WHERE role = ?
                    ORDER BY created_at DESC, rowid DESC
                    """,
                    (role,),
                ).fetchall()
            event["rowcount"] = len(rows)
        LOGGER.debug("Found %s user(s) with role %s", len(rows), role)
        return [_user_from_row(row) for row in rows]

    def add_roster_edge(
        self,
        teacher_id: str,
        student_id: str,
        *,
        created_at: datetime | str | None = None,
    ) -> RosterEntry:
        """Insert the (teacher, student) edge; an existing edge is a conflict."""

        timestamp = format_timestamp(created_at)
        with self._track_db_event("teacher_students.insert", table="teacher_students") as event:
            with self._transaction() as connection:
                existing = self._execute(
                    connection,
                    "SELECT 1 FROM teacher_students WHERE teacher_id = ? AND student_id = ?",
                    (teacher_id, student_id),
                ).fetchone()
                if existing is not None:
                    event["status"] = "conflict"
                    raise ConflictError("Student is already enrolled in this teacher's class")
                try:
                    self._execute(
                        connection,
                        "INSERT INTO teacher_students(teacher_id, student_id, created_at) VALUES (?, ?, ?)",
                        (teacher_id, student_id, timestamp),
                    )
                except sqlite3.IntegrityError as error:
                    # Another writer enrolled the same pair after the check above.
                    event["status"] = "conflict"
                    raise ConflictError("Student is already enrolled in this teacher's class") from error
        return RosterEntry(teacher_id=teacher_id, student_id=student_id, created_at=timestamp)

    def remove_roster_edge(self, teacher_id: str, student_id: str) -> int:
        with self._track_db_event("teacher_students.delete", table="teacher_students") as event:
            with self._transaction() as connection:
                cursor = self._execute(
                    connection,
                    "DELETE FROM teacher_students WHERE teacher_id = ? AND student_id = ?",
                    (teacher_id, student_id),
                )
                removed = max(cursor.rowcount, 0)
            event["rowcount"] = removed
        return removed

    def iter_roster(self, teacher_id: str) -> List[Enrollment]:
        with self._track_db_event("teacher_students.list", table="teacher_students") as event:
            with self._transaction() as connection:
                rows = self._execute(
                    connection,
                    """
                    SELECT u.id, u.username, u.email, u.name, u.role, u.avatar, u.created_at,
                           ts.created_at AS enrolled_at
                    FROM teacher_students AS ts
                    JOIN users AS u ON u.id = ts.student_id
                    WHERE ts.teacher_id = ?
                    ORDER BY ts.created_at DESC, ts.rowid DESC
                    """,
                    (teacher_id,),
                ).fetchall()
            event["rowcount"] = len(rows)
        return [Enrollment(student=_user_from_row(row), enrolled_at=row["enrolled_at"]) for row in rows]


# ---------------------------------------------------------------------------
# Lectures
# ---------------------------------------------------------------------------
_LECTURE_SELECT = """
SELECT l.id, l.user_id, l.teacher_id, l.filename, l.original_name, l.file_type,
       l.file_size, l.content, l.summary_data, l.is_public, l.created_at, l.updated_at,
       u.name AS teacher_name, u.email AS teacher_email
FROM lectures AS l
LEFT JOIN users AS u ON u.id = l.teacher_id
"""

_NEWEST_FIRST = "ORDER BY l.created_at DESC, l.rowid DESC"


def _decode_summary(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Discarding undecodable summary data (%s bytes)", len(raw))
        return None


def _lecture_from_row(row: sqlite3.Row, permissions: Iterable[str] = ()) -> LectureRecord:
    return LectureRecord(
        id=row["id"],
        user_id=row["user_id"],
        teacher_id=row["teacher_id"],
        filename=row["filename"],
        original_name=row["original_name"],
        file_type=row["file_type"],
        file_size=int(row["file_size"]),
        content=row["content"],
        summary_data=_decode_summary(row["summary_data"]),
        is_public=bool(row["is_public"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        permissions=frozenset(permissions),
        teacher_name=row["teacher_name"],
        teacher_email=row["teacher_email"],
    )


class LectureRepository(_SQLiteRepository):
    """Lecture records together with their per-student permission rows."""

    def _load_permissions(
        self, connection: sqlite3.Connection, lecture_ids: Sequence[str]
    ) -> Dict[str, set]:
        grants: Dict[str, set] = {lecture_id: set() for lecture_id in lecture_ids}
        for offset in range(0, len(lecture_ids), _IN_CLAUSE_CHUNK):
            chunk = lecture_ids[offset : offset + _IN_CLAUSE_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            rows = self._execute(
                connection,
                f"SELECT lecture_id, student_id FROM lecture_permissions WHERE lecture_id IN ({placeholders})",
                chunk,
            ).fetchall()
            for row in rows:
                grants[row["lecture_id"]].add(row["student_id"])
        return grants

    def _select_lectures(
        self,
        action: str,
        where: str,
        parameters: Sequence[Any],
    ) -> List[LectureRecord]:
        with self._track_db_event(action, table="lectures") as event:
            with self._transaction() as connection:
                rows = self._execute(
                    connection,
                    f"{_LECTURE_SELECT} WHERE {where} {_NEWEST_FIRST}",
                    parameters,
                ).fetchall()
                grants = self._load_permissions(connection, [row["id"] for row in rows])
            event["rowcount"] = len(rows)
        return [_lecture_from_row(row, grants[row["id"]]) for row in rows]

    def add_lecture(
        self,
        *,
        user_id: str,
        teacher_id: str,
        filename: str,
        content: str,
        file_size: int,
        original_name: Optional[str] = None,
        file_type: str = "text/plain",
        summary_data: Any = None,
        is_public: bool = False,
        permissions: Iterable[str] = (),
        lecture_id: Optional[str] = None,
        created_at: datetime | str | None = None,
    ) -> LectureRecord:
        if file_size < 0:
            raise ValueError("file_size must not be negative")
        identifier = lecture_id or new_identifier()
        timestamp = format_timestamp(created_at)
        granted = sorted(set(permissions))
        LOGGER.debug(
            "Adding lecture '%s' for teacher_id=%s (public=%s, grants=%s)",
            filename,
            teacher_id,
            is_public,
            len(granted),
        )
        with self._track_db_event(
            "lectures.insert",
            table="lectures",
            teacher_id=teacher_id,
            is_public=is_public,
            permission_count=len(granted),
        ) as event:
            with self._transaction() as connection:
                self._execute(
                    connection,
                    """
                    INSERT INTO lectures(
                        id, user_id, teacher_id, filename, original_name, file_type,
                        file_size, content, summary_data, is_public, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        identifier,
                        user_id,
                        teacher_id,
                        filename,
                        original_name or filename,
                        file_type,
                        str(int(file_size)),
                        content,
                        json.dumps(summary_data) if summary_data is not None else None,
                        int(bool(is_public)),
                        timestamp,
                        timestamp,
                    ),
                )
                connection.executemany(
                    "INSERT INTO lecture_permissions(lecture_id, student_id) VALUES (?, ?)",
                    [(identifier, student_id) for student_id in granted],
                )
            event["lecture_id"] = identifier
        lecture = self.get_lecture(identifier)
        if lecture is None:
            raise StorageError("Lecture disappeared after insert")
        return lecture

    def get_lecture(self, lecture_id: str) -> Optional[LectureRecord]:
        matches = self._select_lectures("lectures.get", "l.id = ?", (lecture_id,))
        return matches[0] if matches else None

    def find_by_teacher(self, teacher_id: str) -> List[LectureRecord]:
        return self._select_lectures("lectures.find_by_teacher", "l.teacher_id = ?", (teacher_id,))

    def find_by_user(self, user_id: str) -> List[LectureRecord]:
        return self._select_lectures("lectures.find_by_user", "l.user_id = ?", (user_id,))

    def find_accessible_by_student(self, student_id: str) -> List[LectureRecord]:
        """Public lectures plus those explicitly granted to ``student_id``."""

        return self._select_lectures(
            "lectures.find_accessible_by_student",
            """
            l.is_public = 1 OR EXISTS (
                SELECT 1 FROM lecture_permissions AS p
                WHERE p.lecture_id = l.id AND p.student_id = ?
            )
            """,
            (student_id,),
        )

    def replace_permissions(self, lecture_id: str, permissions: Iterable[str]) -> bool:
        """Swap the full permission set in one transaction.

        Returns ``False`` when the lecture does not exist.
        """

        granted = sorted(set(permissions))
        with self._track_db_event(
            "lecture_permissions.replace",
            table="lecture_permissions",
            lecture_id=lecture_id,
            permission_count=len(granted),
        ) as event:
            with self._transaction() as connection:
                cursor = self._execute(
                    connection,
                    "UPDATE lectures SET updated_at = ? WHERE id = ?",
                    (format_timestamp(), lecture_id),
                )
                if cursor.rowcount == 0:
                    event["found"] = False
                    return False
                self._execute(
                    connection,
                    "DELETE FROM lecture_permissions WHERE lecture_id = ?",
                    (lecture_id,),
                )
                connection.executemany(
                    "INSERT INTO lecture_permissions(lecture_id, student_id) VALUES (?, ?)",
                    [(lecture_id, student_id) for student_id in granted],
                )
            event["found"] = True
        return True

    def _update_columns(self, lecture_id: str, action: str, **columns: Any) -> bool:
        assignments = ", ".join(f"{column} = ?" for column in columns)
        values = list(columns.values())
        with self._track_db_event(action, table="lectures", lecture_id=lecture_id) as event:
            with self._transaction() as connection:
                cursor = self._execute(
                    connection,
                    f"UPDATE lectures SET {assignments}, updated_at = ? WHERE id = ?",
                    (*values, format_timestamp(), lecture_id),
                )
                updated = cursor.rowcount > 0
            event["found"] = updated
        return updated

    def set_public(self, lecture_id: str, is_public: bool) -> bool:
        return self._update_columns(lecture_id, "lectures.set_public", is_public=int(bool(is_public)))

    def update_summary(self, lecture_id: str, summary_data: Any) -> bool:
        encoded = json.dumps(summary_data) if summary_data is not None else None
        return self._update_columns(lecture_id, "lectures.update_summary", summary_data=encoded)

    def remove_lecture(self, lecture_id: str) -> bool:
        with self._track_db_event("lectures.delete", table="lectures", lecture_id=lecture_id) as event:
            with self._transaction() as connection:
                cursor = self._execute(
                    connection,
                    "DELETE FROM lectures WHERE id = ?",
                    (lecture_id,),
                )
                removed = cursor.rowcount > 0
            event["found"] = removed
        return removed


__all__ = [
    "Enrollment",
    "LectureRecord",
    "LectureRepository",
    "ROLES",
    "ROLE_STUDENT",
    "ROLE_TEACHER",
    "RosterEntry",
    "UserRecord",
    "UserRepository",
    "format_timestamp",
    "new_identifier",
]
