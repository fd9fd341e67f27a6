"""Domain layer - Pure business entities and errors"""

from .models import (
    UNCHANGED,
    EntryPatch,
    OpenSessionPolicy,
    TimeEntry,
    TimeRange,
    UserPreferences,
)
from .errors import (
    ConstraintViolation,
    DomainError,
    EntryNotFound,
    InvalidEntry,
    InvalidTimeRange,
    IoFailure,
    MigrationFailed,
    NoOpenSession,
    OverlappingSession,
    SessionAlreadyOpen,
    SessionNotFound,
    StorageError,
    TimeKeeperError,
    UnsupportedSchema,
)

__all__ = [
    "UNCHANGED", "EntryPatch", "OpenSessionPolicy", "TimeEntry", "TimeRange", "UserPreferences",
    "TimeKeeperError", "StorageError", "EntryNotFound", "MigrationFailed", "UnsupportedSchema",
    "IoFailure", "ConstraintViolation", "DomainError", "SessionAlreadyOpen", "NoOpenSession",
    "InvalidEntry", "InvalidTimeRange", "SessionNotFound", "OverlappingSession",
]
