"""Week arithmetic and timezone helpers shared by models and services."""
from datetime import date, datetime, timedelta, timezone
from typing import Optional

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC so comparisons work."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def week_bounds(d: date) -> tuple[date, date]:
    """ISO week (Monday..Sunday) containing d."""
    monday = d - timedelta(days=d.weekday())
    return monday, monday + timedelta(days=6)


def subtract_months(d: date, months: int) -> date:
    month_index = d.year * 12 + (d.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # clamp to the last valid day of the target month
    day = d.day
    while True:
        try:
            return date(year, month, day)
        except ValueError:
            day -= 1


def format_week_label(start: date, end: date) -> str:
    """'Mar 3-9, 2025' or 'Mar 31 - Apr 6, 2025'."""
    start_month = MONTH_NAMES[start.month - 1]
    end_month = MONTH_NAMES[end.month - 1]
    if start_month == end_month:
        return f"{start_month} {start.day}-{end.day}, {start.year}"
    return f"{start_month} {start.day} - {end_month} {end.day}, {start.year}"
