"""Error taxonomy shared by the services and the web layer."""

from __future__ import annotations

from typing import Optional


class LectureShareError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code = 500
    public_message = "Server error"

    def __init__(self, message: Optional[str] = None, *, details: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.details = details


class ValidationError(LectureShareError):
    """A required identifier or field is missing or malformed."""

    status_code = 400
    public_message = "Invalid request"


class NotFoundError(LectureShareError):
    status_code = 404
    public_message = "Not found"


class ConflictError(LectureShareError):
    status_code = 409
    public_message = "Conflict"


class StorageError(LectureShareError):
    """The database rejected or failed an operation.

    The original ``sqlite3`` error is chained as ``__cause__`` and only logged;
    clients see the generic message.
    """

    status_code = 500
    public_message = "Server error"


__all__ = [
    "ConflictError",
    "LectureShareError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
