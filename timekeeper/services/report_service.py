"""
Aggregation of time entries into totals.

The module-level functions are pure: they take any iterable of TimeEntry and
never touch the store, so they can be tested and reused without a database.
ReportService feeds them from the repository.

Attribution rule: an entry counts entirely towards the calendar day (and week)
in which it starts, even if it runs past midnight.
"""

import datetime
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from timekeeper.domain.models import TimeEntry, TimeRange, UserPreferences
from timekeeper.infra.repository import TimeEntryRepository
from timekeeper.utils import start_of_week

UNLABELED = "unlabeled"

ZERO = datetime.timedelta(0)


class GoalStatus(Enum):
    ZERO_GOAL = "zero_goal"
    STILL_NEEDS = "still_needs"
    REACHED = "reached"


@dataclass(frozen=True)
class GoalState:
    status: GoalStatus
    remaining: datetime.timedelta = ZERO


@dataclass
class DayTotal:
    """Entries and total time for one calendar day"""
    day: datetime.date
    entries: List[TimeEntry] = field(default_factory=list)
    total: datetime.timedelta = ZERO


def _in_range(entries: Iterable[TimeEntry], time_range: Optional[TimeRange]) -> Iterable[TimeEntry]:
    if time_range is None:
        return entries
    return (e for e in entries if time_range.contains(e.start_time))


def totals_by_day(entries: Iterable[TimeEntry], time_range: Optional[TimeRange] = None,
                  now: Optional[datetime.datetime] = None) -> Dict[datetime.date, datetime.timedelta]:
    """Total duration per start day of the entries starting inside ``time_range``"""
    totals: Dict[datetime.date, datetime.timedelta] = defaultdict(lambda: ZERO)
    for entry in _in_range(entries, time_range):
        totals[entry.start_time.date()] += entry.duration(now)
    return dict(totals)


def totals_by_project(entries: Iterable[TimeEntry], time_range: Optional[TimeRange] = None,
                      now: Optional[datetime.datetime] = None) -> Dict[str, datetime.timedelta]:
    """Total duration per project; entries without a project go to UNLABELED"""
    totals: Dict[str, datetime.timedelta] = defaultdict(lambda: ZERO)
    for entry in _in_range(entries, time_range):
        totals[entry.project or UNLABELED] += entry.duration(now)
    return dict(totals)


def totals_by_week(entries: Iterable[TimeEntry], time_range: Optional[TimeRange] = None,
                   now: Optional[datetime.datetime] = None,
                   first_day: str = "monday") -> Dict[datetime.date, datetime.timedelta]:
    """Total duration keyed by the first day of each week"""
    totals: Dict[datetime.date, datetime.timedelta] = defaultdict(lambda: ZERO)
    for entry in _in_range(entries, time_range):
        totals[start_of_week(entry.start_time.date(), first_day)] += entry.duration(now)
    return dict(totals)


def week_breakdown(entries: Iterable[TimeEntry], day: datetime.date,
                   first_day: str = "monday",
                   now: Optional[datetime.datetime] = None) -> List[DayTotal]:
    """Seven DayTotal values for the week containing ``day``, in order"""
    first = start_of_week(day, first_day)
    days = [DayTotal(day=first + datetime.timedelta(days=i)) for i in range(7)]
    by_date = {d.day: d for d in days}

    for entry in sorted(entries, key=lambda e: e.start_time):
        bucket = by_date.get(entry.start_time.date())
        if bucket is None:
            continue
        bucket.entries.append(entry)
        bucket.total += entry.duration(now)
    return days


def goal_state(goal: datetime.timedelta, spent: datetime.timedelta) -> GoalState:
    if goal <= ZERO:
        return GoalState(GoalStatus.ZERO_GOAL)
    remaining = goal - spent
    if remaining <= ZERO:
        return GoalState(GoalStatus.REACHED)
    return GoalState(GoalStatus.STILL_NEEDS, remaining)


class ReportService:
    """
    Read-side queries for history and summary views.

    The first day of the week and the daily and weekly goals are taken from
    ``preferences``.
    """

    def __init__(self, repository: Optional[TimeEntryRepository] = None,
                 preferences: Optional[UserPreferences] = None):
        self.repository = repository or TimeEntryRepository()
        self.prefs = preferences or UserPreferences()

    @property
    def first_day(self) -> str:
        return self.prefs.start_of_week

    async def _entries(self, time_range: Optional[TimeRange] = None,
                       project: Optional[str] = None) -> List[TimeEntry]:
        return await self.repository.query(time_range, project).all()

    async def totals_by_day(self, time_range: Optional[TimeRange] = None,
                            now: Optional[datetime.datetime] = None) -> Dict[datetime.date, datetime.timedelta]:
        return totals_by_day(await self._entries(time_range), time_range, now)

    async def totals_by_project(self, time_range: Optional[TimeRange] = None,
                                now: Optional[datetime.datetime] = None) -> Dict[str, datetime.timedelta]:
        return totals_by_project(await self._entries(time_range), time_range, now)

    async def totals_by_week(self, time_range: Optional[TimeRange] = None,
                             now: Optional[datetime.datetime] = None) -> Dict[datetime.date, datetime.timedelta]:
        return totals_by_week(await self._entries(time_range), time_range, now, self.first_day)

    async def total_for_day(self, day: datetime.date,
                            now: Optional[datetime.datetime] = None) -> datetime.timedelta:
        entries = await self._entries(TimeRange.for_day(day))
        return sum((e.duration(now) for e in entries), ZERO)

    async def week(self, day: datetime.date,
                   now: Optional[datetime.datetime] = None) -> List[DayTotal]:
        entries = await self._entries(TimeRange.for_week(day, self.first_day))
        return week_breakdown(entries, day, self.first_day, now)

    async def remaining_daily_goal(self, day: Optional[datetime.date] = None,
                                   now: Optional[datetime.datetime] = None) -> GoalState:
        day = day or datetime.date.today()
        return goal_state(self.prefs.daily_goal, await self.total_for_day(day, now))

    async def remaining_weekly_goal(self, day: Optional[datetime.date] = None,
                                    now: Optional[datetime.datetime] = None) -> GoalState:
        day = day or datetime.date.today()
        spent = sum((d.total for d in await self.week(day, now)), ZERO)
        return goal_state(self.prefs.weekly_goal, spent)
