"""
Tests for TimeEntryManager.
"""

import asyncio
import datetime

import pytest
from pydantic import ValidationError

from timekeeper.domain.errors import (
    ConstraintViolation,
    InvalidEntry,
    InvalidTimeRange,
    NoOpenSession,
    OverlappingSession,
    SessionAlreadyOpen,
    SessionNotFound,
)
from timekeeper.domain.models import OpenSessionPolicy, TimeEntry, UserPreferences
from timekeeper.infra.repository import TimeEntryRepository
from timekeeper.services.entry_manager import TimeEntryManager


def at(hour, minute=0, day=1):
    return datetime.datetime(2024, 1, day, hour, minute)


@pytest.mark.asyncio
async def test_start_stop_scenario(manager):
    started = await manager.start_session(label="writing", project="book", at=at(9))
    assert started.is_open
    assert started.start_time == at(9)

    with pytest.raises(SessionAlreadyOpen):
        await manager.start_session(label="other", at=at(9, 5))

    stopped = await manager.stop_session(at=at(9, 5))
    assert stopped.id == started.id
    assert stopped.end_time == at(9, 5)
    assert manager.duration_of(stopped) == datetime.timedelta(minutes=5)
    assert await manager.current_open_session() is None


@pytest.mark.asyncio
async def test_stop_without_open_session(manager):
    with pytest.raises(NoOpenSession):
        await manager.stop_session(at=at(10))


@pytest.mark.asyncio
async def test_stop_before_start_is_rejected(manager):
    await manager.start_session(at=at(10))

    with pytest.raises(InvalidTimeRange):
        await manager.stop_session(at=at(9))

    assert (await manager.current_open_session()).start_time == at(10)


@pytest.mark.asyncio
async def test_concurrent_starts_open_exactly_one_session(manager):
    results = await asyncio.gather(
        *(manager.start_session(label=f"s{i}", at=at(9, i)) for i in range(5)),
        return_exceptions=True
    )

    opened = [r for r in results if isinstance(r, TimeEntry)]
    rejected = [r for r in results if isinstance(r, SessionAlreadyOpen)]
    assert len(opened) == 1
    assert len(rejected) == 4

    entries = await manager.query().all()
    assert sum(1 for e in entries if e.is_open) == 1


@pytest.mark.asyncio
async def test_separate_managers_are_backed_by_the_store(db_engine):
    first = TimeEntryManager(TimeEntryRepository(db_engine))
    second = TimeEntryManager(TimeEntryRepository(db_engine))

    await first.start_session(at=at(9))

    with pytest.raises(SessionAlreadyOpen):
        await second.start_session(at=at(9, 1))


@pytest.mark.asyncio
async def test_store_conflict_surfaces_as_session_already_open(repo, monkeypatch):
    manager = TimeEntryManager(repo)
    await manager.start_session(at=at(9))

    # Simulate a stale read: the check passes but the insert hits the constraint
    async def no_open_entry():
        return None
    monkeypatch.setattr(repo, "get_open", no_open_entry)

    with pytest.raises(SessionAlreadyOpen) as exc_info:
        await manager.start_session(at=at(9, 30))
    assert isinstance(exc_info.value.__cause__, ConstraintViolation)


@pytest.mark.asyncio
async def test_auto_close_policy_stops_running_session(repo):
    manager = TimeEntryManager(repo, policy=OpenSessionPolicy.AUTO_CLOSE)
    first = await manager.start_session(project="a", at=at(9))

    second = await manager.start_session(project="b", at=at(10))

    closed = await repo.get(first.id)
    assert closed.end_time == at(10)
    assert (await manager.current_open_session()).id == second.id


@pytest.mark.asyncio
@pytest.mark.parametrize("policy", [OpenSessionPolicy.REJECT, OpenSessionPolicy.AUTO_CLOSE])
async def test_invalid_start_changes_nothing(repo, policy):
    manager = TimeEntryManager(repo, policy=policy)
    running = await manager.start_session(label="running", at=at(9))

    with pytest.raises(InvalidEntry) as exc_info:
        await manager.start_session(label="x" * 201, at=at(10))

    assert isinstance(exc_info.value.__cause__, ValidationError)
    still_running = await manager.current_open_session()
    assert still_running.id == running.id
    assert still_running.end_time is None
    assert len(await manager.query().all()) == 1


@pytest.mark.asyncio
async def test_invalid_start_with_nothing_running(manager):
    with pytest.raises(InvalidEntry):
        await manager.start_session(project="p" * 201)

    assert await manager.current_open_session() is None


@pytest.mark.asyncio
async def test_policy_from_preferences(repo):
    prefs = UserPreferences(open_session_policy="auto_close", prevent_overlaps=False)

    manager = TimeEntryManager.from_preferences(prefs, repo)

    assert manager.policy is OpenSessionPolicy.AUTO_CLOSE
    assert manager.prevent_overlaps is False


@pytest.mark.asyncio
async def test_current_open_session_is_not_cached(manager, repo):
    entry = await manager.start_session(at=at(9))
    assert (await manager.current_open_session()).id == entry.id

    # A change made behind the manager's back is visible immediately
    await repo.delete(entry.id)
    assert await manager.current_open_session() is None


@pytest.mark.asyncio
async def test_edit_session_updates_fields(manager):
    entry = await manager.add_entry(at(9), at(10), label="old", project="alpha", note="n")

    edited = await manager.edit_session(entry.id, at(9, 15), at(11), label="new", note=None)

    assert edited.start_time == at(9, 15)
    assert edited.end_time == at(11)
    assert edited.label == "new"
    assert edited.note is None
    assert edited.project == "alpha"


@pytest.mark.asyncio
async def test_edit_with_end_before_start_leaves_row_unchanged(manager, repo):
    entry = await manager.add_entry(at(9), at(10), label="keep")

    with pytest.raises(InvalidTimeRange):
        await manager.edit_session(entry.id, at(10), at(9), label="changed")

    stored = await repo.get(entry.id)
    assert stored.model_dump() == entry.model_dump()


@pytest.mark.asyncio
async def test_edit_missing_session(manager):
    with pytest.raises(SessionNotFound):
        await manager.edit_session(42, at(9), at(10))


@pytest.mark.asyncio
async def test_edit_can_reopen_session(manager):
    entry = await manager.add_entry(at(9), at(10))

    reopened = await manager.edit_session(entry.id, at(9), None)

    assert reopened.is_open
    assert (await manager.current_open_session()).id == entry.id


@pytest.mark.asyncio
async def test_reopen_rejected_while_another_session_runs(manager, repo):
    closed = await manager.add_entry(at(9), at(10))
    running = await manager.start_session(at=at(11))

    with pytest.raises(SessionAlreadyOpen) as exc_info:
        await manager.edit_session(closed.id, at(9), None)

    assert exc_info.value.open_entry_id == running.id
    assert (await repo.get(closed.id)).end_time == at(10)


@pytest.mark.asyncio
async def test_overlapping_entries_are_rejected(manager):
    first = await manager.add_entry(at(9), at(10))
    second = await manager.add_entry(at(10), at(11))

    with pytest.raises(OverlappingSession) as exc_info:
        await manager.add_entry(at(9, 30), at(10, 30))
    assert exc_info.value.conflicting_ids == [first.id, second.id]

    with pytest.raises(OverlappingSession):
        await manager.edit_session(second.id, at(9, 45), at(11))

    # Moving an entry within its own slot is fine
    moved = await manager.edit_session(second.id, at(10, 15), at(11))
    assert moved.start_time == at(10, 15)


@pytest.mark.asyncio
async def test_overlaps_allowed_when_disabled(repo):
    manager = TimeEntryManager(repo, prevent_overlaps=False)
    await manager.add_entry(at(9), at(10))

    entry = await manager.add_entry(at(9, 30), at(10, 30))

    assert entry.id is not None


@pytest.mark.asyncio
async def test_add_entry_with_end_before_start(manager):
    with pytest.raises(InvalidTimeRange):
        await manager.add_entry(at(10), at(9))


@pytest.mark.asyncio
async def test_add_entry_with_invalid_label(manager):
    with pytest.raises(InvalidEntry) as exc_info:
        await manager.add_entry(at(9), at(10), label="x" * 201)

    assert isinstance(exc_info.value.__cause__, ValidationError)
    assert await manager.query().all() == []


@pytest.mark.asyncio
async def test_edit_with_invalid_label_leaves_row_unchanged(manager, repo):
    entry = await manager.add_entry(at(9), at(10), label="keep")

    with pytest.raises(InvalidEntry):
        await manager.edit_session(entry.id, at(9), at(11), label="x" * 201)

    stored = await repo.get(entry.id)
    assert stored.label == "keep"
    assert stored.end_time == at(10)


@pytest.mark.asyncio
async def test_delete_session(manager):
    entry = await manager.add_entry(at(9), at(10))

    await manager.delete_session(entry.id)

    assert await manager.repository.get(entry.id) is None
    with pytest.raises(SessionNotFound) as exc_info:
        await manager.delete_session(entry.id)
    assert exc_info.value.__cause__ is not None


@pytest.mark.asyncio
async def test_duration_of_open_and_closed_entries():
    closed = TimeEntry(start_time=at(9), end_time=at(10, 30))
    running = TimeEntry(start_time=at(9))

    assert TimeEntryManager.duration_of(closed) == datetime.timedelta(hours=1, minutes=30)
    assert TimeEntryManager.duration_of(running, now=at(9, 20)) == datetime.timedelta(minutes=20)
    # A clock that is behind the start never yields a negative duration
    assert TimeEntryManager.duration_of(running, now=at(8)) == datetime.timedelta(0)


@pytest.mark.asyncio
async def test_list_projects(manager):
    await manager.add_entry(at(9), at(10), project="beta")
    await manager.add_entry(at(10), at(11), project="alpha")

    assert await manager.list_projects() == ["alpha", "beta"]


@pytest.mark.asyncio
async def test_delete_sessions_while_iterating_query(manager):
    for hour in range(8, 14):
        await manager.add_entry(at(hour), at(hour, 30))

    async for entry in manager.query():
        await manager.delete_session(entry.id)

    assert await manager.query().all() == []
