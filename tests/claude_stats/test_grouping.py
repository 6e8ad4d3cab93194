"""Tests for calendar bucketing helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from claude_token_usage.stats.grouping import (
    block_end_for,
    block_start_for,
    local_date,
    month_key,
    week_start_for_date,
    with_instance,
)
from claude_token_usage.stats.schemas import WeekStart


@pytest.mark.parametrize("start", [WeekStart.SUNDAY, WeekStart.MONDAY])
def test_every_day_of_a_week_maps_to_the_same_week_start(start: WeekStart) -> None:
    """All seven days starting at a week start should map back to it."""
    for offset in range(60):
        week_start = week_start_for_date(date(2024, 11, 1) + timedelta(days=offset), start)
        for day in range(7):
            assert week_start_for_date(week_start + timedelta(days=day), start) == week_start


def test_week_start_respects_configured_first_day() -> None:
    """2024-12-04 is a Wednesday."""
    assert week_start_for_date(date(2024, 12, 4), WeekStart.MONDAY) == date(2024, 12, 2)
    assert week_start_for_date(date(2024, 12, 4), WeekStart.SUNDAY) == date(2024, 12, 1)
    assert week_start_for_date(date(2024, 12, 1), WeekStart.MONDAY) == date(2024, 11, 25)


def test_local_date_uses_selected_timezone() -> None:
    """An instant late in UTC can fall on the next day elsewhere."""
    timestamp = datetime(2024, 12, 1, 23, 30, tzinfo=UTC)

    assert local_date(timestamp, ZoneInfo("UTC")) == date(2024, 12, 1)
    assert local_date(timestamp, ZoneInfo("Asia/Tokyo")) == date(2024, 12, 2)


@pytest.mark.parametrize("block_hours", [1, 3, 5, 7, 24])
def test_block_start_is_greatest_multiple_at_or_before_hour(block_hours: int) -> None:
    """Block starts sit on local hours that are multiples of the block length."""
    timezone = ZoneInfo("UTC")
    for hour in range(24):
        timestamp = datetime(2024, 12, 1, hour, 42, 17, tzinfo=UTC)
        start = block_start_for(timestamp, timezone, block_hours)

        assert start.hour % block_hours == 0
        assert start.hour <= hour < start.hour + block_hours
        assert (start.minute, start.second, start.microsecond) == (0, 0, 0)
        assert block_end_for(start, block_hours) == start + timedelta(hours=block_hours)


def test_block_start_uses_local_wall_clock() -> None:
    """Blocks anchor on local hours, not UTC hours."""
    timestamp = datetime(2024, 12, 1, 3, 0, tzinfo=UTC)

    start = block_start_for(timestamp, ZoneInfo("America/New_York"), 5)

    assert start.isoformat() == "2024-11-30T20:00:00-05:00"


def test_month_key_and_instance_key() -> None:
    """Month keys are zero-padded and instance keys append the project."""
    assert month_key(date(2024, 3, 9)) == "2024-03"
    assert with_instance("2024-03", "proj") == "2024-03 (proj)"
    assert with_instance("2024-03", None) == "2024-03"
