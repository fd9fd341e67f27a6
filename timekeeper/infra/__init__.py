"""Infrastructure layer - Database and persistence"""

from .db import DatabaseEngine, get_engine, init_db
from .migrations import MIGRATIONS, Migration, ensure_schema, get_schema_version
from .repository import EntryQuery, TimeEntryRepository

__all__ = [
    "DatabaseEngine", "get_engine", "init_db",
    "MIGRATIONS", "Migration", "ensure_schema", "get_schema_version",
    "EntryQuery", "TimeEntryRepository",
]
