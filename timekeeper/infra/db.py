"""
SQLAlchemy database models and configuration.

Architecture Decision: Why SQLAlchemy?
- Provides ORM for cleaner code and prevents SQL injection
- Supports async operations for non-blocking database access
- Easy to migrate to PostgreSQL or other databases if needed

The tables themselves are created by ``timekeeper.infra.migrations``; the ORM
model below mirrors the newest schema version.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


MEMORY_DB_URL = "sqlite+aiosqlite:///:memory:"


# Base class for all models
class Base(DeclarativeBase):
    pass


class TimeEntryModel(Base):
    """SQLAlchemy model for TimeEntry entity"""
    __tablename__ = "time_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # 1 for the open entry, NULL otherwise; UNIQUE allows a single open entry
    running: Mapped[Optional[bool]] = mapped_column(Boolean, unique=True, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class DatabaseEngine:
    """
    Manages database connection and session lifecycle.

    Singleton pattern ensures only one engine exists per application.
    """
    _instance: Optional['DatabaseEngine'] = None

    def __init__(self, db_url: str):
        self.url = db_url
        self.engine = create_async_engine(db_url, echo=False)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        if db_url.startswith("sqlite"):
            _take_over_sqlite_transactions(self.engine)

    @classmethod
    def get_instance(cls, db_url: Optional[str] = None) -> 'DatabaseEngine':
        """Get or create the database engine instance"""
        if cls._instance is None:
            if db_url is None:
                from timekeeper.infra.config import get_settings
                db_url = get_settings().get_db_url()
            cls._instance = cls(db_url)
        return cls._instance

    @classmethod
    async def reset_instance(cls) -> None:
        """Dispose of the shared engine so the next call creates a fresh one"""
        if cls._instance is not None:
            await cls._instance.dispose()
            cls._instance = None

    @property
    def is_persistent(self) -> bool:
        return ":memory:" not in self.url

    def get_session(self) -> AsyncSession:
        """Get a new database session"""
        return self.session_factory()

    async def dispose(self) -> None:
        await self.engine.dispose()


def _take_over_sqlite_transactions(engine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself.

    The sqlite3 driver only opens a transaction before DML statements, which
    would leave schema changes outside of any transaction.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# Convenience functions
def get_engine(db_url: Optional[str] = None) -> DatabaseEngine:
    """Get the database engine instance"""
    return DatabaseEngine.get_instance(db_url)


async def init_db(db_url: Optional[str] = None) -> DatabaseEngine:
    """Initialize the database (create or upgrade the schema)"""
    from timekeeper.infra.migrations import ensure_schema

    engine = get_engine(db_url)
    await ensure_schema(engine)
    return engine
