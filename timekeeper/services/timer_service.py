"""
Timer Service - live view of the running session for the UI.

Architecture Decision: Observer Pattern (Qt Signals)
The service emits signals when state changes, keeping it decoupled from UI.
All rules live in TimeEntryManager; this class only remembers which entry it
is displaying so it can update the clock once per second.
"""

import datetime
import logging
from typing import Optional
from PySide6.QtCore import QObject, QTimer, Signal

from timekeeper.domain.models import TimeEntry, UserPreferences
from timekeeper.services.entry_manager import TimeEntryManager
from timekeeper.services.report_service import ReportService
from timekeeper.utils import format_duration

logger = logging.getLogger(__name__)


class TimerService(QObject):
    """
    Drives the running clock and forwards session changes as signals.
    """

    # Signals
    tick = Signal(str, int)  # (formatted_time, elapsed_seconds)
    session_started = Signal(int)  # entry_id
    session_stopped = Signal(int, int)  # entry_id, total_seconds

    # Notification Signals
    daily_goal_reached = Signal(float)  # goal hours
    weekly_goal_reached = Signal(float)  # goal hours

    def __init__(self, manager: TimeEntryManager,
                 reports: Optional[ReportService] = None,
                 preferences: Optional[UserPreferences] = None):
        super().__init__()
        self.manager = manager
        self.prefs = preferences or UserPreferences()
        self.reports = reports or ReportService(manager.repository, preferences=self.prefs)

        self.current_entry: Optional[TimeEntry] = None

        # Totals of everything except the running entry, loaded on start
        self.daily_base = datetime.timedelta(0)
        self.weekly_base = datetime.timedelta(0)
        self.notified_daily = False
        self.notified_weekly = False

        # Internal timer that fires every second
        self.timer = QTimer()
        self.timer.timeout.connect(self._on_tick)

    async def start(self, label: Optional[str] = None, project: Optional[str] = None,
                    note: Optional[str] = None) -> TimeEntry:
        """Start a session and begin ticking"""
        entry = await self.manager.start_session(label=label, project=project, note=note)
        await self._track(entry)
        self.session_started.emit(entry.id)
        return entry

    async def stop(self) -> TimeEntry:
        """Stop the running session"""
        self.timer.stop()
        entry = await self.manager.stop_session()
        self.current_entry = None
        self.session_stopped.emit(entry.id, int(entry.duration().total_seconds()))
        return entry

    async def restore(self) -> Optional[TimeEntry]:
        """
        Resume ticking for a session left running by a previous run of the app.
        """
        entry = await self.manager.current_open_session()
        if entry is not None:
            logger.info(f"Resuming display of running session {entry.id}")
            await self._track(entry)
        return entry

    async def _track(self, entry: TimeEntry):
        self.current_entry = entry
        today = entry.start_time.date()

        # The running entry is part of the stored totals; subtract its current length
        elapsed = entry.duration()
        self.daily_base = await self.reports.total_for_day(today) - elapsed
        week = await self.reports.week(today)
        self.weekly_base = sum((d.total for d in week), datetime.timedelta(0)) - elapsed

        self.notified_daily = self._reached(self.daily_base, self.prefs.daily_goal)
        self.notified_weekly = self._reached(self.weekly_base, self.prefs.weekly_goal)

        self.timer.start(1000)  # 1000ms = 1 second

    @staticmethod
    def _reached(spent: datetime.timedelta, goal: datetime.timedelta) -> bool:
        return goal > datetime.timedelta(0) and spent >= goal

    def _on_tick(self, now: Optional[datetime.datetime] = None):
        """Called every second to update the clock"""
        if self.current_entry is None:
            return

        elapsed = self.current_entry.duration(now)
        label = self.current_entry.label or self.current_entry.project or ""
        time_str = format_duration(elapsed, self.prefs.show_seconds)
        if label:
            time_str = f"{label}: {time_str}"
        self.tick.emit(time_str, int(elapsed.total_seconds()))

        if not self.notified_daily and self._reached(self.daily_base + elapsed, self.prefs.daily_goal):
            self.notified_daily = True
            self.daily_goal_reached.emit(self.prefs.daily_goal_hours)

        if not self.notified_weekly and self._reached(self.weekly_base + elapsed, self.prefs.weekly_goal):
            self.notified_weekly = True
            self.weekly_goal_reached.emit(self.prefs.weekly_goal_hours)

    def is_tracking(self) -> bool:
        """Check if currently tracking time"""
        return self.current_entry is not None
