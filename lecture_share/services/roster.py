"""Teacher rosters: which students a teacher manages."""

from __future__ import annotations

import logging
from typing import List

from .errors import NotFoundError, ValidationError
from .storage import ROLE_STUDENT, ROLE_TEACHER, ROLES, Enrollment, RosterEntry, UserRecord, UserRepository

LOGGER = logging.getLogger(__name__)


class RosterManager:
    """Maintains teacher→student edges.

    Adding an edge that already exists raises :class:`ConflictError` on every
    attempt. Removing an edge that does not exist is a no-op reporting zero
    removed rows.
    """

    def __init__(self, users: UserRepository) -> None:
        self._users = users

    def _require_user(self, user_id: str, role: str) -> UserRecord:
        user = self._users.get_user(user_id)
        if user is None or user.role != role:
            raise NotFoundError(f"{role.capitalize()} not found")
        return user

    def add_student_to_teacher(self, teacher_id: str, student_id: str) -> RosterEntry:
        if not teacher_id or not student_id:
            raise ValidationError("Teacher ID and Student ID required")
        self._require_user(teacher_id, ROLE_TEACHER)
        self._require_user(student_id, ROLE_STUDENT)
        entry = self._users.add_roster_edge(teacher_id, student_id)
        LOGGER.info("Enrolled student %s with teacher %s", student_id, teacher_id)
        return entry

    def remove_student_from_teacher(self, teacher_id: str, student_id: str) -> int:
        if not teacher_id or not student_id:
            raise ValidationError("Teacher ID and Student ID required")
        removed = self._users.remove_roster_edge(teacher_id, student_id)
        if removed:
            LOGGER.info("Removed student %s from teacher %s", student_id, teacher_id)
        else:
            LOGGER.info("No roster entry for student %s under teacher %s", student_id, teacher_id)
        return removed

    def get_students_by_teacher(self, teacher_id: str) -> List[Enrollment]:
        if not teacher_id:
            raise ValidationError("Teacher ID required")
        return self._users.iter_roster(teacher_id)

    def find_by_role(self, role: str) -> List[UserRecord]:
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role}")
        return self._users.find_by_role(role)


__all__ = ["RosterManager"]
