"""Local-time helpers.

All timestamps are stored as naive datetimes in the configured campus
timezone (`settings.TIMEZONE`).
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def _zone() -> ZoneInfo:
    from ..config import settings

    return ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """Return the current wall-clock time in the campus timezone, naive."""
    return datetime.now(_zone()).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def combine(day: date, at: time) -> datetime:
    """Join a calendar day and a clock time into a naive datetime."""
    return datetime.combine(day, at.replace(tzinfo=None))


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def week_range(day: date) -> tuple[date, date]:
    """Return the Sunday..Saturday week containing `day`."""
    # isoweekday: Monday=1 .. Sunday=7
    start = day - timedelta(days=day.isoweekday() % 7)
    return start, start + timedelta(days=6)


def format_window(start: datetime, end: datetime) -> str:
    return f"{start:%Y-%m-%d} {start:%H:%M} - {end:%H:%M}"
