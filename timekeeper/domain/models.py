"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic provides runtime data validation, ensuring data integrity when loading
from the YAML config file or the database. ORM rows are converted with
``model_validate`` (``from_attributes=True``), so the rest of the code never
touches SQLAlchemy objects.
"""

import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from timekeeper.utils import start_of_day, start_of_week, to_local_naive


# Aware timestamps are converted to naive local time on the way in
LocalDateTime = Annotated[datetime.datetime, AfterValidator(to_local_naive)]

# Marker for "leave this field as it is" in edit operations
UNCHANGED: Any = object()


class OpenSessionPolicy(str, Enum):
    """What starting a session does while another one is running"""
    REJECT = "reject"
    AUTO_CLOSE = "auto_close"


class TimeEntry(BaseModel):
    """
    Represents a single time tracking session.

    An entry without ``end_time`` is the running (open) session. At most one
    such entry exists in the store.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    project: Optional[str] = Field(default=None, max_length=200)
    label: Optional[str] = Field(default=None, max_length=200)
    start_time: LocalDateTime
    end_time: Optional[LocalDateTime] = None
    note: Optional[str] = None
    created_at: datetime.datetime = Field(default_factory=datetime.datetime.now)

    @model_validator(mode="after")
    def _check_range(self) -> "TimeEntry":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def duration(self, now: Optional[datetime.datetime] = None) -> datetime.timedelta:
        """Elapsed time; open entries run until ``now``. Never negative."""
        end = self.end_time
        if end is None:
            end = to_local_naive(now) if now is not None else datetime.datetime.now()
        return max(end - self.start_time, datetime.timedelta(0))


class EntryPatch(BaseModel):
    """
    Partial update for a stored entry.

    Only fields that were explicitly passed are applied, so ``end_time=None``
    re-opens an entry while an omitted ``end_time`` keeps the stored value.
    """
    project: Optional[str] = Field(default=None, max_length=200)
    label: Optional[str] = Field(default=None, max_length=200)
    start_time: Optional[LocalDateTime] = None
    end_time: Optional[LocalDateTime] = None
    note: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class TimeRange(BaseModel):
    """Half-open interval [start, end). Either bound may be left open."""
    start: Optional[LocalDateTime] = None
    end: Optional[LocalDateTime] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeRange":
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError("range end must not be before range start")
        return self

    @classmethod
    def for_day(cls, day: datetime.date) -> "TimeRange":
        start = start_of_day(day)
        return cls(start=start, end=start + datetime.timedelta(days=1))

    @classmethod
    def for_week(cls, day: datetime.date, first_day: str = "monday") -> "TimeRange":
        start = start_of_day(start_of_week(day, first_day))
        return cls(start=start, end=start + datetime.timedelta(days=7))

    def contains(self, moment: datetime.datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


class UserPreferences(BaseModel):
    """
    User configuration and preferences.

    This allows users to customize behavior without touching code.
    """
    model_config = ConfigDict(from_attributes=True)

    # Display
    show_seconds: bool = Field(default=True, description="Show seconds in the running clock")

    # Calendar
    start_of_week: Literal["monday", "sunday"] = "monday"

    # Goals (0 disables a goal)
    daily_goal_hours: float = Field(default=8.0, ge=0)
    weekly_goal_hours: float = Field(default=40.0, ge=0)

    # Session rules
    open_session_policy: OpenSessionPolicy = Field(
        default=OpenSessionPolicy.REJECT,
        description="'reject' a new session while one runs, or 'auto_close' the running one"
    )
    prevent_overlaps: bool = Field(default=True, description="Reject edits that overlap other sessions")

    @property
    def daily_goal(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self.daily_goal_hours)

    @property
    def weekly_goal(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self.weekly_goal_hours)
