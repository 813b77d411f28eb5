"""FastAPI application exposing lectures, permissions and rosters."""

from __future__ import annotations

import contextvars
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import AppConfig
from ..services.access import AccessResolver
from ..services.catalog import LectureCatalog
from ..services.errors import LectureShareError, NotFoundError, StorageError
from ..services.events import emit_db_event, emit_structured_event
from ..services.permissions import PermissionMutator
from ..services.roster import RosterManager
from ..services.storage import (
    ROLE_STUDENT,
    Enrollment,
    LectureRecord,
    LectureRepository,
    RosterEntry,
    UserRecord,
    UserRepository,
)
from .schemas import (
    LectureCreatePayload,
    LectureSummaryPayload,
    PermissionUpdatePayload,
    RosterPayload,
)


NO_CACHE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
    "Surrogate-Control": "no-store",
}
REQUEST_ID_HEADER = "X-Request-ID"
SERVER_ERROR_MESSAGE = "Server error"


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "lecture_share_request_id",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    request_id = _REQUEST_ID_VAR.get()
    return {"request_id": request_id} if request_id else {}


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request id into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        request_id = extra.get("request_id")
        if request_id:
            msg = f"[{request_id[:8]}] {msg}"
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("lecture_share.events"), {})


class RequestContextMiddleware:
    """Assign a correlation id to each request and echo it in the response."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope.setdefault("state", {})["request_id"] = request_id
        token = _REQUEST_ID_VAR.set(request_id)

        async def _send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER.lower().encode("latin-1"), request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, _send_with_request_id)
        finally:
            _REQUEST_ID_VAR.reset(token)


def _emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
) -> None:
    emit_db_event(
        action,
        payload=payload,
        correlation=_collect_correlation_context(),
        duration_ms=duration_ms,
        logger=EVENT_LOGGER,
    )


def _log_event(message: str, **context: Any) -> None:
    emit_structured_event(
        "APP_EVENT",
        message,
        payload=context,
        correlation=_collect_correlation_context(),
        logger=EVENT_LOGGER,
    )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _serialize_lecture(lecture: LectureRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": lecture.id,
        "userId": lecture.user_id,
        "teacherId": lecture.teacher_id,
        "filename": lecture.filename,
        "originalName": lecture.original_name,
        "fileType": lecture.file_type,
        # Sizes can exceed the range JSON numbers represent exactly.
        "fileSize": str(lecture.file_size),
        "content": lecture.content,
        "summaryData": lecture.summary_data,
        "isPublic": lecture.is_public,
        "permissions": sorted(lecture.permissions),
        "createdAt": lecture.created_at,
        "updatedAt": lecture.updated_at,
    }
    if lecture.teacher_name is not None or lecture.teacher_email is not None:
        data["teacher"] = {"name": lecture.teacher_name, "email": lecture.teacher_email}
    return data


def _serialize_user(user: UserRecord) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "avatar": user.avatar,
        "createdAt": user.created_at,
    }


def _serialize_enrollment(enrollment: Enrollment) -> Dict[str, Any]:
    data = _serialize_user(enrollment.student)
    data["enrolledAt"] = enrollment.enrolled_at
    return data


def _serialize_roster_entry(entry: RosterEntry) -> Dict[str, Any]:
    return {
        "teacherId": entry.teacher_id,
        "studentId": entry.student_id,
        "createdAt": entry.created_at,
    }


def _clean_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _summarize_validation_errors(error: RequestValidationError) -> str:
    parts: List[str] = []
    for item in error.errors()[:3]:
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else str(message))
    return "; ".join(parts) or "Malformed request"


def _install_error_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": ..., "details"?: ...}``."""

    @app.exception_handler(LectureShareError)
    async def _handle_domain_error(request: Request, exc: LectureShareError) -> JSONResponse:
        if isinstance(exc, StorageError):
            LOGGER.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
            return JSONResponse({"error": SERVER_ERROR_MESSAGE}, status_code=exc.status_code)
        body: Dict[str, Any] = {"error": exc.message}
        if exc.details and exc.status_code < 500:
            body["details"] = exc.details
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": str(exc.detail)},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            {"error": "Invalid request", "details": _summarize_validation_errors(exc)},
            status_code=400,
        )

    @app.middleware("http")
    async def _catch_unhandled(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse({"error": SERVER_ERROR_MESSAGE}, status_code=500)


def create_app(
    lectures: LectureRepository,
    users: UserRepository,
    *,
    config: AppConfig,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application bound to the given stores."""

    app = FastAPI(
        title="Lecture Share",
        description="Share lectures with students and manage class rosters",
        root_path=root_path or "",
    )

    def _repository_event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
        if event_type == "DB_QUERY":
            _emit_db_event(message, **kwargs)
        else:
            _log_event(message, **(kwargs.get("payload") or {}))

    for repository in (lectures, users):
        configure_emitter = getattr(repository, "configure_event_emitter", None)
        if callable(configure_emitter):
            configure_emitter(_repository_event_emitter)

    resolver = AccessResolver(lectures)
    mutator = PermissionMutator(lectures)
    roster = RosterManager(users)
    catalog = LectureCatalog(lectures, users)

    app.state.config = config
    app.state.access_resolver = resolver
    app.state.permission_mutator = mutator
    app.state.roster_manager = roster
    app.state.lecture_catalog = catalog

    _install_error_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    def _best_effort_lecture(lecture_id: str) -> Optional[LectureRecord]:
        try:
            return lectures.get_lecture(lecture_id)
        except StorageError as error:
            LOGGER.warning("Could not reload lecture %s after update: %s", lecture_id, error)
            return None

    # ------------------------------------------------------------------
    # Lecture visibility
    # ------------------------------------------------------------------
    @app.get("/lectures/latest")
    async def get_latest_lecture(
        user_id: Optional[str] = Query(None, alias="userId"),
        role: Optional[str] = Query(None),
    ) -> Dict[str, Any]:
        user_id = _clean_id(user_id)
        if user_id is None:
            raise HTTPException(status_code=400, detail="User ID required")

        _log_event("Resolving latest lecture", user_id=user_id, role=role)
        lecture = resolver.latest_for(user_id, role)
        return {"success": True, "lecture": _serialize_lecture(lecture)}

    @app.put("/lectures/permissions")
    async def update_lecture_permissions(payload: PermissionUpdatePayload) -> JSONResponse:
        lecture_id = _clean_id(payload.lecture_id)
        if lecture_id is None:
            raise HTTPException(status_code=400, detail="Lecture ID required")

        _log_event(
            "Updating lecture permissions",
            lecture_id=lecture_id,
            permission_count=len(payload.permissions) if payload.permissions is not None else None,
            is_public=payload.is_public,
        )
        granted: Optional[List[str]] = None
        is_public = payload.is_public
        if payload.permissions is not None:
            granted = mutator.apply_permissions(lecture_id, payload.permissions)
        if is_public is not None:
            try:
                mutator.apply_public_status(lecture_id, is_public)
            except StorageError as error:
                if granted is None:
                    raise
                # The permission set is already committed; report it and leave isPublic unset.
                LOGGER.warning("Permissions saved for lecture %s but public status failed: %s", lecture_id, error)
                is_public = None

        mutated = granted is not None or is_public is not None
        if mutated:
            updated = _best_effort_lecture(lecture_id)
        else:
            updated = lectures.get_lecture(lecture_id)
            if updated is None:
                raise NotFoundError("Lecture not found")

        return JSONResponse(
            {
                "success": True,
                "lecture": _serialize_lecture(updated) if updated is not None else None,
                "permissions": granted,
                "isPublic": is_public,
                "timestamp": _utc_timestamp(),
            },
            headers=NO_CACHE_HEADERS,
        )

    # ------------------------------------------------------------------
    # Lecture catalog
    # ------------------------------------------------------------------
    @app.post("/lectures")
    async def create_lecture(payload: LectureCreatePayload) -> Dict[str, Any]:
        lecture = catalog.create_lecture(
            user_id=_clean_id(payload.user_id),
            teacher_id=_clean_id(payload.teacher_id),
            filename=payload.filename,
            original_name=payload.original_name,
            file_type=payload.file_type,
            file_size=payload.file_size,
            content=payload.content,
            summary_data=payload.summary_data,
            is_public=bool(payload.is_public),
            permissions=payload.permissions or (),
        )
        _log_event("Created lecture", lecture_id=lecture.id, teacher_id=lecture.teacher_id)
        return {"success": True, "lecture": _serialize_lecture(lecture)}

    @app.get("/lectures")
    async def list_lectures(
        lecture_id: Optional[str] = Query(None, alias="lectureId"),
        teacher_id: Optional[str] = Query(None, alias="teacherId"),
        student_id: Optional[str] = Query(None, alias="studentId"),
        user_id: Optional[str] = Query(None, alias="userId"),
        force: Optional[str] = Query(None),
    ) -> JSONResponse:
        lecture_id = _clean_id(lecture_id)
        teacher_id = _clean_id(teacher_id)
        student_id = _clean_id(student_id)
        user_id = _clean_id(user_id)

        if lecture_id is not None:
            if student_id is not None:
                lecture = resolver.get_for_student(lecture_id, student_id)
            else:
                lecture = catalog.get_lecture(lecture_id)
            body: Dict[str, Any] = {"success": True, "lecture": _serialize_lecture(lecture)}
        elif teacher_id is not None:
            records = resolver.find_by_teacher(teacher_id)
            body = {
                "success": True,
                "lectures": [_serialize_lecture(record) for record in records],
                "timestamp": _utc_timestamp(),
                "count": len(records),
                "forceRefresh": bool(force),
            }
        elif student_id is not None:
            records = resolver.find_accessible_by_student(student_id)
            body = {"success": True, "lectures": [_serialize_lecture(record) for record in records]}
        elif user_id is not None:
            records = catalog.find_by_user(user_id)
            body = {"success": True, "lectures": [_serialize_lecture(record) for record in records]}
        else:
            raise HTTPException(
                status_code=400,
                detail="User ID, Teacher ID, Student ID or Lecture ID required",
            )
        return JSONResponse(body, headers=NO_CACHE_HEADERS)

    @app.put("/lectures")
    async def update_lecture_summary(payload: LectureSummaryPayload) -> Dict[str, Any]:
        lecture_id = _clean_id(payload.lecture_id)
        if lecture_id is None:
            raise HTTPException(status_code=400, detail="Lecture ID required")
        lecture = catalog.update_summary(lecture_id, payload.summary_data)
        return {"success": True, "lecture": _serialize_lecture(lecture)}

    @app.delete("/lectures")
    async def delete_lecture(lecture_id: Optional[str] = Query(None, alias="lectureId")) -> Dict[str, Any]:
        lecture_id = _clean_id(lecture_id)
        if lecture_id is None:
            raise HTTPException(status_code=400, detail="Lecture ID required")
        removed = catalog.delete_lecture(lecture_id)
        _log_event("Deleted lecture", lecture_id=lecture_id)
        return {
            "success": True,
            "message": "Lecture deleted successfully",
            "lecture": _serialize_lecture(removed),
        }

    # ------------------------------------------------------------------
    # Students and rosters
    # ------------------------------------------------------------------
    @app.get("/students")
    async def list_students() -> Dict[str, Any]:
        students = roster.find_by_role(ROLE_STUDENT)
        return {"success": True, "students": [_serialize_user(student) for student in students]}

    @app.get("/students/fresh")
    async def list_students_fresh(force: Optional[str] = Query(None)) -> JSONResponse:
        students = roster.find_by_role(ROLE_STUDENT)
        _log_event("Listing students without cache", count=len(students), force=bool(force))
        return JSONResponse(
            {
                "success": True,
                "students": [_serialize_user(student) for student in students],
                "timestamp": _utc_timestamp(),
                "count": len(students),
                "forceRefresh": bool(force),
            },
            headers=NO_CACHE_HEADERS,
        )

    @app.get("/teacher")
    async def list_teacher_students(
        teacher_id: Optional[str] = Query(None, alias="teacherId"),
    ) -> Dict[str, Any]:
        teacher_id = _clean_id(teacher_id)
        if teacher_id is None:
            raise HTTPException(status_code=400, detail="Teacher ID required")
        enrollments = roster.get_students_by_teacher(teacher_id)
        return {"success": True, "students": [_serialize_enrollment(item) for item in enrollments]}

    @app.post("/teacher")
    async def add_student_to_teacher(payload: RosterPayload) -> JSONResponse:
        teacher_id = _clean_id(payload.teacher_id)
        student_id = _clean_id(payload.student_id)
        if teacher_id is None or student_id is None:
            raise HTTPException(status_code=400, detail="Teacher ID and Student ID required")
        entry = roster.add_student_to_teacher(teacher_id, student_id)
        return JSONResponse(
            {"success": True, "result": _serialize_roster_entry(entry)},
            headers=NO_CACHE_HEADERS,
        )

    @app.delete("/teacher")
    async def remove_student_from_teacher(
        teacher_id: Optional[str] = Query(None, alias="teacherId"),
        student_id: Optional[str] = Query(None, alias="studentId"),
    ) -> JSONResponse:
        teacher_id = _clean_id(teacher_id)
        student_id = _clean_id(student_id)
        if teacher_id is None or student_id is None:
            raise HTTPException(status_code=400, detail="Teacher ID and Student ID required")
        removed = roster.remove_student_from_teacher(teacher_id, student_id)
        return JSONResponse(
            {"success": True, "message": "Student removed from teacher", "removed": removed},
            headers=NO_CACHE_HEADERS,
        )

    return app


__all__ = ["NO_CACHE_HEADERS", "REQUEST_ID_HEADER", "create_app"]
