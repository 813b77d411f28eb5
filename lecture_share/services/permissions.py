"""Write side of lecture visibility: permission sets and public status."""

from __future__ import annotations

import logging
from typing import Iterable, List

from .errors import NotFoundError, ValidationError
from .storage import LectureRecord, LectureRepository

LOGGER = logging.getLogger(__name__)


def normalize_permissions(permissions: Iterable[str]) -> List[str]:
    """Strip, de-duplicate and sort student ids; blank ids are rejected."""

    if isinstance(permissions, str):
        raise ValidationError("Permissions must be a list of student IDs")
    cleaned = set()
    for entry in permissions:
        if not isinstance(entry, str) or not entry.strip():
            raise ValidationError("Permissions must be a list of student IDs")
        cleaned.add(entry.strip())
    return sorted(cleaned)


class PermissionMutator:
    """Applies permission and visibility changes to lectures.

    Both operations overwrite state rather than patching it, so repeating a
    call with the same value leaves the lecture unchanged. Public status and
    the permission set are independent of each other.
    """

    def __init__(self, lectures: LectureRepository) -> None:
        self._lectures = lectures

    def apply_permissions(self, lecture_id: str, permissions: Iterable[str]) -> List[str]:
        """Persist the new permission set and return it in normalized form."""

        granted = normalize_permissions(permissions)
        LOGGER.info("Replacing permissions for lecture %s with %s student(s)", lecture_id, len(granted))
        if not self._lectures.replace_permissions(lecture_id, granted):
            raise NotFoundError("Lecture not found")
        return granted

    def apply_public_status(self, lecture_id: str, is_public: bool) -> None:
        if not isinstance(is_public, bool):
            raise ValidationError("isPublic must be a boolean")
        LOGGER.info("Setting lecture %s public=%s", lecture_id, is_public)
        if not self._lectures.set_public(lecture_id, is_public):
            raise NotFoundError("Lecture not found")

    def update_permissions(self, lecture_id: str, permissions: Iterable[str]) -> LectureRecord:
        self.apply_permissions(lecture_id, permissions)
        return self._reload(lecture_id)

    def update_public_status(self, lecture_id: str, is_public: bool) -> LectureRecord:
        self.apply_public_status(lecture_id, is_public)
        return self._reload(lecture_id)

    def _reload(self, lecture_id: str) -> LectureRecord:
        lecture = self._lectures.get_lecture(lecture_id)
        if lecture is None:
            raise NotFoundError("Lecture not found")
        return lecture


__all__ = ["PermissionMutator", "normalize_permissions"]
