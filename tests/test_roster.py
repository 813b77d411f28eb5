from __future__ import annotations

import sqlite3

import pytest

from lecture_share.services.errors import ConflictError, NotFoundError, ValidationError
from lecture_share.services.roster import RosterManager


@pytest.fixture()
def people(user_repository):
    teacher = user_repository.create_user("prof", "prof@school.edu", role="teacher", name="Prof")
    student = user_repository.create_user("kim", "kim@school.edu", role="student", name="Kim")
    return teacher, student


def test_add_then_list_students(user_repository, people) -> None:
    teacher, student = people
    roster = RosterManager(user_repository)

    entry = roster.add_student_to_teacher(teacher.id, student.id)
    enrollments = roster.get_students_by_teacher(teacher.id)

    assert (entry.teacher_id, entry.student_id) == (teacher.id, student.id)
    assert [item.student.id for item in enrollments] == [student.id]
    assert enrollments[0].enrolled_at == entry.created_at


def test_duplicate_enrollment_conflicts_every_time(user_repository, people) -> None:
    teacher, student = people
    roster = RosterManager(user_repository)
    roster.add_student_to_teacher(teacher.id, student.id)

    for _ in range(2):
        with pytest.raises(ConflictError) as excinfo:
            roster.add_student_to_teacher(teacher.id, student.id)
        assert excinfo.value.status_code == 409

    assert len(roster.get_students_by_teacher(teacher.id)) == 1


def test_removing_missing_edge_is_a_noop(user_repository, people) -> None:
    teacher, student = people
    roster = RosterManager(user_repository)

    assert roster.remove_student_from_teacher(teacher.id, student.id) == 0
    roster.add_student_to_teacher(teacher.id, student.id)
    assert roster.remove_student_from_teacher(teacher.id, student.id) == 1
    assert roster.remove_student_from_teacher(teacher.id, student.id) == 0
    assert roster.get_students_by_teacher(teacher.id) == []


def test_unknown_or_mismatched_users_are_not_found(user_repository, people) -> None:
    teacher, student = people
    roster = RosterManager(user_repository)

    with pytest.raises(NotFoundError, match="Teacher not found"):
        roster.add_student_to_teacher("ghost", student.id)
    with pytest.raises(NotFoundError, match="Student not found"):
        roster.add_student_to_teacher(teacher.id, "ghost")
    with pytest.raises(NotFoundError, match="Teacher not found"):
        roster.add_student_to_teacher(student.id, teacher.id)


def test_missing_ids_are_rejected(user_repository) -> None:
    roster = RosterManager(user_repository)

    with pytest.raises(ValidationError):
        roster.add_student_to_teacher("", "s1")
    with pytest.raises(ValidationError):
        roster.remove_student_from_teacher("t1", "")
    with pytest.raises(ValidationError):
        roster.get_students_by_teacher("")


def test_find_by_role_filters_users(user_repository, people) -> None:
    teacher, student = people
    roster = RosterManager(user_repository)

    assert [user.id for user in roster.find_by_role("student")] == [student.id]
    assert [user.id for user in roster.find_by_role("teacher")] == [teacher.id]
    with pytest.raises(ValidationError):
        roster.find_by_role("admin")


def test_enrollment_racing_another_writer_conflicts(
    temp_config, user_repository, people, monkeypatch
) -> None:
    teacher, student = people
    original_execute = user_repository._execute

    def _execute_with_competing_insert(connection, statement, parameters=None):
        cursor = original_execute(connection, statement, parameters)
        if statement.startswith("SELECT 1 FROM teacher_students"):
            rival = sqlite3.connect(temp_config.database_file)
            try:
                rival.execute(
                    "INSERT INTO teacher_students(teacher_id, student_id, created_at) VALUES (?, ?, ?)",
                    (teacher.id, student.id, "2024-01-01T00:00:00.000000+00:00"),
                )
                rival.commit()
            finally:
                rival.close()
        return cursor

    monkeypatch.setattr(user_repository, "_execute", _execute_with_competing_insert)

    with pytest.raises(ConflictError) as excinfo:
        RosterManager(user_repository).add_student_to_teacher(teacher.id, student.id)

    assert excinfo.value.status_code == 409
    monkeypatch.undo()
    assert len(user_repository.iter_roster(teacher.id)) == 1
