"""Request bodies accepted by the HTTP API.

Field names are snake_case in Python and camelCase on the wire. Identifiers
are optional at the schema level so that a missing id produces the API's own
400 message instead of a generic validation error.
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt


class _CamelPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PermissionUpdatePayload(_CamelPayload):
    lecture_id: Optional[str] = Field(None, alias="lectureId")
    permissions: Optional[List[str]] = None
    is_public: Optional[StrictBool] = Field(None, alias="isPublic")


class RosterPayload(_CamelPayload):
    teacher_id: Optional[str] = Field(None, alias="teacherId")
    student_id: Optional[str] = Field(None, alias="studentId")


class LectureCreatePayload(_CamelPayload):
    user_id: Optional[str] = Field(None, alias="userId")
    teacher_id: Optional[str] = Field(None, alias="teacherId")
    filename: Optional[str] = None
    original_name: Optional[str] = Field(None, alias="originalName")
    file_type: Optional[str] = Field(None, alias="fileType")
    file_size: Union[StrictInt, str, None] = Field(None, alias="fileSize")
    content: Optional[str] = None
    summary_data: Any = Field(None, alias="summaryData")
    is_public: Optional[StrictBool] = Field(None, alias="isPublic")
    permissions: Optional[List[str]] = None


class LectureSummaryPayload(_CamelPayload):
    lecture_id: Optional[str] = Field(None, alias="lectureId")
    summary_data: Any = Field(None, alias="summaryData")


__all__ = [
    "LectureCreatePayload",
    "LectureSummaryPayload",
    "PermissionUpdatePayload",
    "RosterPayload",
]
