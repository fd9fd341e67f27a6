"""
Repository Pattern Implementation.

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Mock data for testing
- Keep SQLAlchemy types out of the services

The repository applies no time tracking rules. It only guarantees that every
write happens inside one transaction that is committed on success and rolled
back on any error, and it translates SQLAlchemy errors into StorageError.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional, Tuple

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.domain.errors import ConstraintViolation, EntryNotFound, IoFailure, StorageError
from timekeeper.domain.models import EntryPatch, TimeEntry, TimeRange
from timekeeper.infra.db import DatabaseEngine, TimeEntryModel, get_engine


def _translate(error: Exception) -> StorageError:
    if isinstance(error, IntegrityError):
        return ConstraintViolation(str(error.orig))
    if isinstance(error, OperationalError):
        return IoFailure(str(error.orig))
    if isinstance(error, OSError):
        return IoFailure(str(error))
    return StorageError(str(error))


class EntryQuery:
    """
    Lazy, restartable view over stored entries, ordered by start time.

    Nothing is read until the query is iterated. Every ``async for`` runs a new
    scan, so iterating twice reflects the store state at each iteration.
    Rows are fetched in batches, each in its own short transaction, and no
    transaction is held while the caller handles a batch. The loop body may
    therefore write to the store, and abandoning the loop leaves nothing locked.
    """

    BATCH_SIZE = 200

    def __init__(self, repository: "TimeEntryRepository",
                 time_range: Optional[TimeRange] = None,
                 project: Optional[str] = None,
                 batch_size: Optional[int] = None):
        self._repository = repository
        self.time_range = time_range
        self.project = project
        self.batch_size = batch_size or self.BATCH_SIZE

    def statement(self, after: Optional[Tuple[datetime, int]] = None):
        stmt = select(TimeEntryModel)
        if self.time_range is not None:
            if self.time_range.start is not None:
                stmt = stmt.where(TimeEntryModel.start_time >= self.time_range.start)
            if self.time_range.end is not None:
                stmt = stmt.where(TimeEntryModel.start_time < self.time_range.end)
        if self.project is not None:
            stmt = stmt.where(TimeEntryModel.project == self.project)
        if after is not None:
            # Resume strictly after the last (start_time, id) already returned
            last_start, last_id = after
            stmt = stmt.where(or_(
                TimeEntryModel.start_time > last_start,
                and_(TimeEntryModel.start_time == last_start, TimeEntryModel.id > last_id)
            ))
        return stmt.order_by(TimeEntryModel.start_time.asc(), TimeEntryModel.id.asc())

    def __aiter__(self) -> AsyncIterator[TimeEntry]:
        return self._scan()

    async def _fetch_batch(self, after: Optional[Tuple[datetime, int]]) -> List[TimeEntry]:
        async with self._repository._transaction() as session:
            result = await session.execute(self.statement(after).limit(self.batch_size))
            return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def _scan(self) -> AsyncIterator[TimeEntry]:
        after = None
        while True:
            batch = await self._fetch_batch(after)
            for entry in batch:
                yield entry
            if len(batch) < self.batch_size:
                return
            after = (batch[-1].start_time, batch[-1].id)

    async def all(self) -> List[TimeEntry]:
        return [entry async for entry in self]


class TimeEntryRepository:
    """
    Handles all TimeEntry-related database operations.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    """

    def __init__(self, engine: Optional[DatabaseEngine] = None):
        self.engine = engine

    def _get_session(self) -> AsyncSession:
        """Get session - from the injected engine or the shared one"""
        engine = self.engine or get_engine()
        return engine.get_session()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with an open transaction: commit on success, rollback otherwise"""
        try:
            async with self._get_session() as session:
                async with session.begin():
                    yield session
        except StorageError:
            raise
        except (SQLAlchemyError, OSError) as e:
            raise _translate(e) from e

    async def insert(self, entry: TimeEntry) -> TimeEntry:
        """Store a new entry; the store assigns its id"""
        async with self._transaction() as session:
            model = TimeEntryModel(
                project=entry.project,
                label=entry.label,
                start_time=entry.start_time,
                end_time=entry.end_time,
                running=True if entry.end_time is None else None,
                note=entry.note,
                created_at=entry.created_at
            )
            session.add(model)
            await session.flush()
            await session.refresh(model)
            return TimeEntry.model_validate(model)

    async def update(self, entry_id: int, patch: EntryPatch) -> TimeEntry:
        """Apply the fields set on ``patch`` to an existing entry"""
        async with self._transaction() as session:
            model = await session.get(TimeEntryModel, entry_id)
            if model is None:
                raise EntryNotFound(entry_id)

            for field, value in patch.changes().items():
                setattr(model, field, value)
            model.running = True if model.end_time is None else None

            await session.flush()
            return TimeEntry.model_validate(model)

    async def delete(self, entry_id: int) -> None:
        """Delete a time entry by ID"""
        async with self._transaction() as session:
            result = await session.execute(
                delete(TimeEntryModel).where(TimeEntryModel.id == entry_id)
            )
            if result.rowcount == 0:
                raise EntryNotFound(entry_id)

    async def get(self, entry_id: int) -> Optional[TimeEntry]:
        """Get a specific entry by ID"""
        async with self._transaction() as session:
            model = await session.get(TimeEntryModel, entry_id)
            return TimeEntry.model_validate(model) if model else None

    async def get_open(self) -> Optional[TimeEntry]:
        """Get the currently running (not ended) entry"""
        async with self._transaction() as session:
            result = await session.execute(
                select(TimeEntryModel).where(TimeEntryModel.end_time.is_(None))
            )
            model = result.scalar_one_or_none()
            return TimeEntry.model_validate(model) if model else None

    def query(self, time_range: Optional[TimeRange] = None,
              project: Optional[str] = None,
              batch_size: Optional[int] = None) -> EntryQuery:
        """Entries starting inside ``time_range`` (and in ``project``), oldest first"""
        return EntryQuery(self, time_range=time_range, project=project, batch_size=batch_size)

    async def find_overlapping(self, start_time: datetime, end_time: Optional[datetime],
                               ignore_id: Optional[int] = None) -> List[TimeEntry]:
        """
        Entries whose interval intersects [start_time, end_time).

        Args:
            start_time: Start of the proposed interval
            end_time: End of the proposed interval; None means it is still running
            ignore_id: Entry to leave out (the one being edited)

        Returns:
            Overlapping entries, oldest first
        """
        async with self._transaction() as session:
            # Overlap: existing.start < new.end AND existing.end > new.start
            # A running entry (end NULL) extends indefinitely.
            conditions = [
                or_(TimeEntryModel.end_time.is_(None), TimeEntryModel.end_time > start_time)
            ]
            if end_time is not None:
                conditions.append(TimeEntryModel.start_time < end_time)
            if ignore_id is not None:
                conditions.append(TimeEntryModel.id != ignore_id)

            result = await session.execute(
                select(TimeEntryModel)
                .where(and_(*conditions))
                .order_by(TimeEntryModel.start_time.asc())
            )
            return [TimeEntry.model_validate(m) for m in result.scalars().all()]

    async def list_projects(self) -> List[str]:
        """Distinct project names in use, sorted"""
        async with self._transaction() as session:
            result = await session.execute(
                select(TimeEntryModel.project)
                .where(TimeEntryModel.project.is_not(None), TimeEntryModel.project != "")
                .distinct()
                .order_by(TimeEntryModel.project)
            )
            return list(result.scalars().all())
