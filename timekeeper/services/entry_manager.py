"""
Time-Entry Manager - the rules of time tracking.

Architecture Decision: Stateless service over the repository
The manager keeps no copy of the running session. Every decision re-reads
the store, so the UI can never act on a stale "currently running" value.
Check-then-act sequences (is a session running? then insert) are serialized
by one asyncio.Lock; the UNIQUE running column in the table backs this up.
"""

import asyncio
import datetime
import logging
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from timekeeper.domain.errors import (
    ConstraintViolation,
    EntryNotFound,
    InvalidEntry,
    InvalidTimeRange,
    NoOpenSession,
    OverlappingSession,
    SessionAlreadyOpen,
    SessionNotFound,
)
from timekeeper.domain.models import UNCHANGED, EntryPatch, OpenSessionPolicy, TimeEntry, TimeRange
from timekeeper.infra.repository import EntryQuery, TimeEntryRepository
from timekeeper.utils import to_local_naive

logger = logging.getLogger(__name__)


def _now() -> datetime.datetime:
    return datetime.datetime.now()


def _build(model: type, **fields) -> BaseModel:
    """Validate input before anything is written"""
    try:
        return model(**fields)
    except ValidationError as e:
        raise InvalidEntry(str(e)) from e


class TimeEntryManager:
    """
    Starts, stops and edits sessions while keeping the store consistent.

    Args:
        repository: Storage for entries
        policy: What ``start_session`` does while a session is running
        prevent_overlaps: Reject edits and manual entries that intersect
            another session
    """

    def __init__(self, repository: Optional[TimeEntryRepository] = None,
                 policy: OpenSessionPolicy = OpenSessionPolicy.REJECT,
                 prevent_overlaps: bool = True):
        self.repository = repository or TimeEntryRepository()
        self.policy = OpenSessionPolicy(policy)
        self.prevent_overlaps = prevent_overlaps
        self._lock = asyncio.Lock()

    @classmethod
    def from_preferences(cls, prefs, repository: Optional[TimeEntryRepository] = None) -> "TimeEntryManager":
        return cls(
            repository,
            policy=prefs.open_session_policy,
            prevent_overlaps=prefs.prevent_overlaps,
        )

    async def start_session(self, label: Optional[str] = None, project: Optional[str] = None,
                            at: Optional[datetime.datetime] = None,
                            note: Optional[str] = None) -> TimeEntry:
        """
        Open a new session starting at ``at`` (defaults to now).

        Raises:
            SessionAlreadyOpen: A session is running and the policy is REJECT
            InvalidEntry: A field is invalid; nothing is changed
            InvalidTimeRange: AUTO_CLOSE would end the running session before it started
        """
        at = to_local_naive(at) if at is not None else _now()
        new_entry = _build(TimeEntry, project=project, label=label, start_time=at, note=note)

        async with self._lock:
            running = await self.repository.get_open()
            if running is not None:
                if self.policy is OpenSessionPolicy.REJECT:
                    raise SessionAlreadyOpen(running.id)
                await self._close(running, at)

            try:
                entry = await self.repository.insert(new_entry)
            except ConstraintViolation as e:
                raise SessionAlreadyOpen() from e

        logger.info(f"Started session {entry.id} ({entry.project or '-'}) at {at}")
        return entry

    async def stop_session(self, at: Optional[datetime.datetime] = None) -> TimeEntry:
        """
        Close the running session at ``at`` (defaults to now).

        Raises:
            NoOpenSession: Nothing is running
            InvalidTimeRange: ``at`` is before the session started
        """
        at = to_local_naive(at) if at is not None else _now()

        async with self._lock:
            running = await self.repository.get_open()
            if running is None:
                raise NoOpenSession()
            entry = await self._close(running, at)

        logger.info(f"Stopped session {entry.id} after {self.duration_of(entry)}")
        return entry

    async def _close(self, running: TimeEntry, at: datetime.datetime) -> TimeEntry:
        if at < running.start_time:
            raise InvalidTimeRange(running.start_time, at)
        return await self.repository.update(running.id, EntryPatch(end_time=at))

    async def edit_session(self, entry_id: int, new_start: datetime.datetime,
                           new_end: Optional[datetime.datetime],
                           label=UNCHANGED, note=UNCHANGED, project=UNCHANGED) -> TimeEntry:
        """
        Change the times (and optionally label, note, project) of an entry.

        Passing ``new_end=None`` re-opens the entry.

        Raises:
            InvalidTimeRange: ``new_end`` is before ``new_start``
            SessionNotFound: No entry with ``entry_id``
            SessionAlreadyOpen: Re-opening while another session runs
            InvalidEntry: A field is invalid
            OverlappingSession: The new times intersect another session
        """
        new_start = to_local_naive(new_start)
        new_end = to_local_naive(new_end)
        if new_end is not None and new_end < new_start:
            raise InvalidTimeRange(new_start, new_end)

        fields = {"start_time": new_start, "end_time": new_end}
        for name, value in (("label", label), ("note", note), ("project", project)):
            if value is not UNCHANGED:
                fields[name] = value
        patch = _build(EntryPatch, **fields)

        async with self._lock:
            existing = await self.repository.get(entry_id)
            if existing is None:
                raise SessionNotFound(entry_id)

            if new_end is None:
                running = await self.repository.get_open()
                if running is not None and running.id != entry_id:
                    raise SessionAlreadyOpen(running.id)

            await self._check_overlap(new_start, new_end, ignore_id=entry_id)

            try:
                entry = await self.repository.update(entry_id, patch)
            except EntryNotFound as e:
                raise SessionNotFound(entry_id) from e

        logger.info(f"Edited session {entry_id}")
        return entry

    async def add_entry(self, start: datetime.datetime, end: datetime.datetime,
                        label: Optional[str] = None, project: Optional[str] = None,
                        note: Optional[str] = None) -> TimeEntry:
        """
        Record a finished session after the fact.

        Raises:
            InvalidTimeRange: ``end`` is before ``start``
            InvalidEntry: A field is invalid
            OverlappingSession: The interval intersects another session
        """
        start = to_local_naive(start)
        end = to_local_naive(end)
        if end < start:
            raise InvalidTimeRange(start, end)
        new_entry = _build(TimeEntry, project=project, label=label, start_time=start, end_time=end, note=note)

        async with self._lock:
            await self._check_overlap(start, end)
            entry = await self.repository.insert(new_entry)

        logger.info(f"Added session {entry.id} from {start} to {end}")
        return entry

    async def _check_overlap(self, start: datetime.datetime, end: Optional[datetime.datetime],
                             ignore_id: Optional[int] = None) -> None:
        if not self.prevent_overlaps:
            return
        conflicts = await self.repository.find_overlapping(start, end, ignore_id=ignore_id)
        if conflicts:
            raise OverlappingSession([c.id for c in conflicts])

    async def delete_session(self, entry_id: int) -> None:
        """
        Remove an entry.

        Raises:
            SessionNotFound: No entry with ``entry_id``
        """
        async with self._lock:
            try:
                await self.repository.delete(entry_id)
            except EntryNotFound as e:
                raise SessionNotFound(entry_id) from e
        logger.info(f"Deleted session {entry_id}")

    async def current_open_session(self) -> Optional[TimeEntry]:
        """The running session, read from the store on every call"""
        return await self.repository.get_open()

    def query(self, time_range: Optional[TimeRange] = None,
              project: Optional[str] = None) -> EntryQuery:
        return self.repository.query(time_range, project)

    async def list_projects(self) -> List[str]:
        return await self.repository.list_projects()

    @staticmethod
    def duration_of(entry: TimeEntry, now: Optional[datetime.datetime] = None) -> datetime.timedelta:
        """``end - start`` for closed entries, ``now - start`` for the running one"""
        return entry.duration(now)
