"""Domain services for lectures, permissions and rosters."""

from .access import AccessResolver, is_accessible
from .catalog import LectureCatalog, parse_file_size
from .errors import ConflictError, LectureShareError, NotFoundError, StorageError, ValidationError
from .permissions import PermissionMutator
from .roster import RosterManager
from .storage import LectureRecord, LectureRepository, UserRecord, UserRepository

__all__ = [
    "AccessResolver",
    "ConflictError",
    "LectureCatalog",
    "LectureRecord",
    "LectureRepository",
    "LectureShareError",
    "NotFoundError",
    "PermissionMutator",
    "RosterManager",
    "StorageError",
    "UserRecord",
    "UserRepository",
    "ValidationError",
    "is_accessible",
    "parse_file_size",
]
