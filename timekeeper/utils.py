import datetime
from typing import Optional


def to_local_naive(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """
    Normalize a timestamp to naive local time.

    The store keeps naive local timestamps. Aware values are converted to the
    machine's local timezone first; naive values are assumed to already be local.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def start_of_day(value: datetime.date) -> datetime.datetime:
    """Midnight at the beginning of the given calendar day"""
    return datetime.datetime.combine(value, datetime.time.min)


def start_of_week(value: datetime.date, first_day: str = "monday") -> datetime.date:
    """Date of the first day of the week containing ``value``"""
    if isinstance(value, datetime.datetime):
        value = value.date()
    if first_day == "monday":
        offset = value.weekday()
    elif first_day == "sunday":
        offset = (value.weekday() + 1) % 7
    else:
        raise ValueError(f"Unsupported start of week: {first_day}")
    return value - datetime.timedelta(days=offset)


def format_duration(duration: datetime.timedelta, show_seconds: bool = True) -> str:
    """Format a duration as HH:MM:SS (or HH:MM)"""
    total = max(int(duration.total_seconds()), 0)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if show_seconds:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}"
