"""Services layer - Business logic"""

from .entry_manager import TimeEntryManager
from .report_service import ReportService, totals_by_day, totals_by_project, totals_by_week
from .timer_service import TimerService

__all__ = [
    "TimeEntryManager", "ReportService", "TimerService",
    "totals_by_day", "totals_by_project", "totals_by_week",
]
