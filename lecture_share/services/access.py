"""Rules deciding which lectures a user gets to see."""

from __future__ import annotations

import logging
from typing import List

from .errors import NotFoundError, ValidationError
from .storage import ROLE_TEACHER, LectureRecord, LectureRepository

LOGGER = logging.getLogger(__name__)


def is_accessible(lecture: LectureRecord, student_id: str) -> bool:
    """A student sees public lectures and the ones granted to them.

    Roster membership does not factor in: a teacher managing a student does
    not implicitly share every lecture with them.
    """

    return lecture.is_public or student_id in lecture.permissions


class AccessResolver:
    """Read side of lecture visibility."""

    def __init__(self, lectures: LectureRepository) -> None:
        self._lectures = lectures

    def find_by_teacher(self, teacher_id: str) -> List[LectureRecord]:
        """All lectures owned by ``teacher_id``, newest first."""

        return self._lectures.find_by_teacher(_require_id(teacher_id, "Teacher ID required"))

    def find_accessible_by_student(self, student_id: str) -> List[LectureRecord]:
        """Lectures ``student_id`` may open, newest first."""

        student_id = _require_id(student_id, "Student ID required")
        lectures = self._lectures.find_accessible_by_student(student_id)
        LOGGER.debug("Student %s can access %s lecture(s)", student_id, len(lectures))
        return lectures

    def latest_for(self, user_id: str, role: str | None) -> LectureRecord:
        """Return the most recent lecture for a teacher, or visible to a student.

        Any role other than ``"teacher"`` is resolved as a student.
        """

        if role == ROLE_TEACHER:
            lectures = self.find_by_teacher(user_id)
        else:
            lectures = self.find_accessible_by_student(user_id)
        if not lectures:
            raise NotFoundError("No lectures found")
        return lectures[0]

    def get_for_student(self, lecture_id: str, student_id: str) -> LectureRecord:
        """Fetch one lecture, hiding it unless ``student_id`` may access it."""

        lecture = self._lectures.get_lecture(_require_id(lecture_id, "Lecture ID required"))
        if lecture is None or not is_accessible(lecture, student_id):
            raise NotFoundError("Lecture not found")
        return lecture


def _require_id(value: str | None, message: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(message)
    return cleaned


__all__ = ["AccessResolver", "is_accessible"]
