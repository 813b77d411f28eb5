from __future__ import annotations

import sqlite3

import pytest

from lecture_share.services.errors import ConflictError, StorageError
from lecture_share.services.storage import LectureRepository, UserRepository, format_timestamp


def test_user_lifecycle_and_role_listing(user_repository: UserRepository) -> None:
    teacher = user_repository.create_user(
        "teacher001",
        "teacher@school.edu",
        role="teacher",
        name="Ada Teacher",
        password_hash="hashed-secret",
        created_at="2024-01-01T08:00:00Z",
    )
    older = user_repository.create_user(
        "student-a", "a@school.edu", role="student", created_at="2024-01-02T08:00:00Z"
    )
    newer = user_repository.create_user(
        "student-b", "b@school.edu", role="student", created_at="2024-01-03T08:00:00Z"
    )

    fetched = user_repository.get_user(teacher.id)
    assert fetched is not None
    assert fetched.name == "Ada Teacher"
    assert not hasattr(fetched, "password_hash")

    students = user_repository.find_by_role("student")
    assert [student.id for student in students] == [newer.id, older.id]
    assert [user.id for user in user_repository.find_by_role("teacher")] == [teacher.id]


def test_duplicate_username_is_a_conflict(user_repository: UserRepository) -> None:
    user_repository.create_user("dup", "one@school.edu", role="student")

    with pytest.raises(ConflictError):
        user_repository.create_user("dup", "two@school.edu", role="student")


def test_roster_edges_are_unique_and_removable(user_repository: UserRepository) -> None:
    teacher = user_repository.create_user("t", "t@school.edu", role="teacher")
    student = user_repository.create_user("s", "s@school.edu", role="student")

    entry = user_repository.add_roster_edge(teacher.id, student.id)
    assert entry.teacher_id == teacher.id

    with pytest.raises(ConflictError):
        user_repository.add_roster_edge(teacher.id, student.id)

    roster = user_repository.iter_roster(teacher.id)
    assert [item.student.id for item in roster] == [student.id]
    assert roster[0].enrolled_at == entry.created_at

    assert user_repository.remove_roster_edge(teacher.id, student.id) == 1
    assert user_repository.remove_roster_edge(teacher.id, student.id) == 0
    assert user_repository.iter_roster(teacher.id) == []


def test_lecture_round_trip_keeps_large_sizes_and_summary(
    user_repository: UserRepository, lecture_repository: LectureRepository
) -> None:
    teacher = user_repository.create_user("t", "t@school.edu", role="teacher", name="Grace")
    huge = 2**70

    lecture = lecture_repository.add_lecture(
        user_id=teacher.id,
        teacher_id=teacher.id,
        filename="recording.mp4",
        content="transcript",
        file_size=huge,
        summary_data={"bullets": ["one", "two"]},
        permissions=["s1", "s2", "s1"],
    )

    assert lecture.file_size == huge
    assert lecture.original_name == "recording.mp4"
    assert lecture.summary_data == {"bullets": ["one", "two"]}
    assert lecture.permissions == frozenset({"s1", "s2"})
    assert lecture.teacher_name == "Grace"
    assert lecture.is_public is False


def test_lecture_requires_existing_teacher(lecture_repository: LectureRepository) -> None:
    with pytest.raises(StorageError) as excinfo:
        lecture_repository.add_lecture(
            user_id="ghost",
            teacher_id="ghost",
            filename="a.txt",
            content="body",
            file_size=4,
        )
    assert isinstance(excinfo.value.__cause__, sqlite3.IntegrityError)


def test_replace_permissions_and_public_flag(
    user_repository: UserRepository, lecture_repository: LectureRepository
) -> None:
    teacher = user_repository.create_user("t", "t@school.edu", role="teacher")
    lecture = lecture_repository.add_lecture(
        user_id=teacher.id,
        teacher_id=teacher.id,
        filename="a.txt",
        content="body",
        file_size=4,
        permissions=["s1"],
    )

    assert lecture_repository.replace_permissions(lecture.id, ["s2", "s3"]) is True
    assert lecture_repository.set_public(lecture.id, True) is True

    reloaded = lecture_repository.get_lecture(lecture.id)
    assert reloaded is not None
    assert reloaded.permissions == frozenset({"s2", "s3"})
    assert reloaded.is_public is True

    assert lecture_repository.replace_permissions("missing", ["s1"]) is False
    assert lecture_repository.set_public("missing", True) is False


def test_removing_lecture_drops_its_permissions(
    temp_config, user_repository: UserRepository, lecture_repository: LectureRepository
) -> None:
    teacher = user_repository.create_user("t", "t@school.edu", role="teacher")
    lecture = lecture_repository.add_lecture(
        user_id=teacher.id,
        teacher_id=teacher.id,
        filename="a.txt",
        content="body",
        file_size=4,
        permissions=["s1"],
    )

    assert lecture_repository.remove_lecture(lecture.id) is True
    assert lecture_repository.remove_lecture(lecture.id) is False
    assert lecture_repository.find_accessible_by_student("s1") == []

    connection = sqlite3.connect(temp_config.database_file)
    try:
        remaining = connection.execute("SELECT COUNT(*) FROM lecture_permissions").fetchone()[0]
    finally:
        connection.close()
    assert remaining == 0


def test_db_events_are_reported_to_the_emitter(
    temp_config, user_repository: UserRepository
) -> None:
    events = []
    user_repository.configure_event_emitter(
        lambda event_type, action, **kwargs: events.append((event_type, action, kwargs))
    )

    user_repository.find_by_role("student")

    assert events
    event_type, action, kwargs = events[-1]
    assert event_type == "DB_QUERY"
    assert action == "users.find_by_role"
    assert kwargs["payload"]["status"] == "ok"
    assert kwargs["payload"]["rowcount"] == 0
    assert kwargs["duration_ms"] >= 0


def test_format_timestamp_normalizes_to_utc() -> None:
    assert format_timestamp("2024-05-01T10:00:00+02:00") == "2024-05-01T08:00:00.000000+00:00"
    assert format_timestamp("2024-05-01T08:00:00Z") == "2024-05-01T08:00:00.000000+00:00"
