"""Creating, fetching and removing lectures."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional

from .errors import NotFoundError, ValidationError
from .permissions import normalize_permissions
from .storage import ROLE_TEACHER, LectureRecord, LectureRepository, UserRepository

LOGGER = logging.getLogger(__name__)

_DECIMAL_PATTERN = re.compile(r"^[0-9]+$")
DEFAULT_FILE_TYPE = "text/plain"


def parse_file_size(value: Any, *, fallback: int) -> int:
    """Return ``value`` as a non-negative integer of any magnitude.

    Clients send sizes beyond 2**53 as decimal strings, so strings are
    accepted alongside integers. Missing or zero values use ``fallback``.
    """

    if value is None or value == "" or value == 0:
        return fallback
    if isinstance(value, bool):
        raise ValidationError("fileSize must be a non-negative integer")
    if isinstance(value, int):
        if value < 0:
            raise ValidationError("fileSize must be a non-negative integer")
        return value
    if isinstance(value, str) and _DECIMAL_PATTERN.match(value.strip()):
        try:
            return int(value.strip())
        except ValueError as error:
            # Digit strings past the interpreter's int conversion limit.
            raise ValidationError("fileSize must be a non-negative integer") from error
    raise ValidationError("fileSize must be a non-negative integer")


class LectureCatalog:
    def __init__(self, lectures: LectureRepository, users: UserRepository) -> None:
        self._lectures = lectures
        self._users = users

    def create_lecture(
        self,
        *,
        user_id: Optional[str],
        filename: Optional[str],
        content: Optional[str],
        teacher_id: Optional[str] = None,
        original_name: Optional[str] = None,
        file_type: Optional[str] = None,
        file_size: Any = None,
        summary_data: Any = None,
        is_public: bool = False,
        permissions: Iterable[str] = (),
    ) -> LectureRecord:
        if not user_id or not filename or not content:
            raise ValidationError("Missing required fields")

        owner_id = teacher_id or user_id
        owner = self._users.get_user(owner_id)
        if owner is None or owner.role != ROLE_TEACHER:
            raise NotFoundError("Teacher not found")

        lecture = self._lectures.add_lecture(
            user_id=user_id,
            teacher_id=owner_id,
            filename=filename,
            original_name=original_name or filename,
            file_type=file_type or DEFAULT_FILE_TYPE,
            file_size=parse_file_size(file_size, fallback=len(content)),
            content=content,
            summary_data=summary_data,
            is_public=bool(is_public),
            permissions=normalize_permissions(permissions or ()),
        )
        LOGGER.info("Created lecture %s for teacher %s", lecture.id, owner_id)
        return lecture

    def get_lecture(self, lecture_id: str) -> LectureRecord:
        lecture = self._lectures.get_lecture(lecture_id)
        if lecture is None:
            raise NotFoundError("Lecture not found")
        return lecture

    def find_by_user(self, user_id: str) -> List[LectureRecord]:
        return self._lectures.find_by_user(user_id)

    def update_summary(self, lecture_id: str, summary_data: Any) -> LectureRecord:
        if not self._lectures.update_summary(lecture_id, summary_data):
            raise NotFoundError("Lecture not found")
        return self.get_lecture(lecture_id)

    def delete_lecture(self, lecture_id: str) -> LectureRecord:
        lecture = self.get_lecture(lecture_id)
        self._lectures.remove_lecture(lecture_id)
        LOGGER.info("Deleted lecture %s", lecture_id)
        return lecture


__all__ = ["DEFAULT_FILE_TYPE", "LectureCatalog", "parse_file_size"]
