"""Calendar bucketing helpers for report grouping."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from .schemas import WeekStart


def local_datetime(timestamp: datetime, timezone: ZoneInfo) -> datetime:
    """Convert an instant into wall-clock time in the selected timezone."""
    normalized = timestamp if timestamp.tzinfo is not None else timestamp.replace(tzinfo=UTC)
    return normalized.astimezone(timezone)


def local_date(timestamp: datetime, timezone: ZoneInfo) -> date:
    """Resolve the calendar date of an instant in the selected timezone."""
    return local_datetime(timestamp, timezone).date()


def week_start_for_date(event_date: date, start: WeekStart) -> date:
    """Return the first day of the week containing `event_date`."""
    weekday_from_sunday = event_date.isoweekday() % 7
    diff = (7 + weekday_from_sunday - start.offset_from_sunday) % 7
    return event_date - timedelta(days=diff)


def month_key(event_date: date) -> str:
    """Return the `YYYY-MM` key of a date."""
    return f"{event_date.year:04d}-{event_date.month:02d}"


def block_start_for(timestamp: datetime, timezone: ZoneInfo, block_hours: int) -> datetime:
    """Return the start of the `block_hours` window containing `timestamp`.

    Windows are anchored at local hours that are multiples of `block_hours`.
    """
    hours = max(block_hours, 1)
    local = local_datetime(timestamp, timezone)
    start_hour = (local.hour // hours) * hours
    return local.replace(hour=start_hour, minute=0, second=0, microsecond=0, fold=0)


def block_end_for(block_start: datetime, block_hours: int) -> datetime:
    """Return the exclusive end of a block."""
    return block_start + timedelta(hours=max(block_hours, 1))


def with_instance(key: str, project: str | None) -> str:
    """Append the project to a row key when instance splitting is on."""
    if project is None:
        return key
    return f"{key} ({project})"
