"""
Error taxonomy.

StorageError covers infrastructure failures raised by the schema and
repository layers. DomainError covers policy violations raised by the
TimeEntryManager; the caller recovers from these by changing its input.
"""

from typing import Optional


class TimeKeeperError(Exception):
    """Base class for all errors raised by timekeeper"""


# --- Storage ---------------------------------------------------------------

class StorageError(TimeKeeperError):
    """The local store could not complete an operation"""


class EntryNotFound(StorageError):
    def __init__(self, entry_id: int):
        super().__init__(f"Time entry {entry_id} not found")
        self.entry_id = entry_id


class MigrationFailed(StorageError):
    def __init__(self, version: int, reason: str):
        super().__init__(f"Migration to schema version {version} failed: {reason}")
        self.version = version


class UnsupportedSchema(StorageError):
    def __init__(self, found: int, supported: int):
        super().__init__(
            f"Database schema version {found} is newer than the supported version {supported}"
        )
        self.found = found
        self.supported = supported


class IoFailure(StorageError):
    """Disk, permission or locking problem"""


class ConstraintViolation(StorageError):
    """A table constraint (uniqueness, check) rejected the write"""


# --- Domain ----------------------------------------------------------------

class DomainError(TimeKeeperError):
    """A requested change would break a time tracking rule"""


class SessionAlreadyOpen(DomainError):
    def __init__(self, open_entry_id: Optional[int] = None):
        if open_entry_id is None:
            message = "A session is already running"
        else:
            message = f"Session {open_entry_id} is already running; stop it first"
        super().__init__(message)
        self.open_entry_id = open_entry_id


class NoOpenSession(DomainError):
    def __init__(self):
        super().__init__("No session is running")


class InvalidTimeRange(DomainError):
    def __init__(self, start, end):
        super().__init__(f"End {end} is before start {start}")
        self.start = start
        self.end = end


class SessionNotFound(DomainError):
    def __init__(self, entry_id: int):
        super().__init__(f"Session {entry_id} not found")
        self.entry_id = entry_id


class OverlappingSession(DomainError):
    def __init__(self, conflicting_ids: list):
        ids = ", ".join(str(i) for i in conflicting_ids)
        super().__init__(f"Time range overlaps existing session(s): {ids}")
        self.conflicting_ids = conflicting_ids


class InvalidEntry(DomainError):
    """Field values that fail validation (e.g. a label that is too long)"""
