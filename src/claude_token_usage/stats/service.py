"""Aggregation service for Claude Code usage reports."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol, TypeVar
from zoneinfo import ZoneInfo

from ..ingestion.schemas import UsageEvent
from .grouping import (
    block_end_for,
    block_start_for,
    local_date,
    month_key,
    week_start_for_date,
    with_instance,
)
from .schemas import (
    BlockRow,
    BlocksReport,
    ModelBreakdown,
    Order,
    RangeFilter,
    Row,
    SessionReport,
    SessionRow,
    StatuslineReport,
    TokenSums,
    Totals,
    UsageReport,
    WeekStart,
)

DEFAULT_BLOCK_HOURS = 5
DEFAULT_RECENT_DAYS = 3
DEFAULT_TOKEN_LIMIT = 500_000

NO_ACTIVITY = datetime.min.replace(tzinfo=UTC)

EventPredicate = Callable[[UsageEvent], bool]
KeyT = TypeVar("KeyT", bound=Hashable)


class _SummedRow(Protocol):
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    cost_usd: float
    model_breakdowns: tuple[ModelBreakdown, ...]


@dataclass
class RowAccumulator:
    """Running sums for one aggregation bucket."""

    breakdown: bool = False
    sums: TokenSums = field(default_factory=TokenSums)
    models: set[str] = field(default_factory=set)
    projects: set[str] = field(default_factory=set)
    per_model: dict[str, TokenSums] = field(default_factory=dict)
    last_activity: datetime = NO_ACTIVITY
    last_project: str = ""

    def add_event(self, event: UsageEvent) -> None:
        """Fold one event into the bucket."""
        self.sums.add_event(event)
        self.projects.add(event.project)
        if event.timestamp > self.last_activity:
            self.last_activity = event.timestamp
            self.last_project = event.project
        if event.model is None:
            return
        self.models.add(event.model)
        if self.breakdown:
            self.per_model.setdefault(event.model, TokenSums()).add_event(event)

    def model_breakdowns(self) -> tuple[ModelBreakdown, ...]:
        """Return per-model breakdowns ordered by model name."""
        return tuple(self.per_model[model].to_breakdown(model) for model in sorted(self.per_model))

    def to_row(self, key: str) -> Row:
        """Freeze into a date-keyed report row."""
        return Row(
            key=key,
            input_tokens=self.sums.input_tokens,
            output_tokens=self.sums.output_tokens,
            cache_creation_tokens=self.sums.cache_creation_tokens,
            cache_read_tokens=self.sums.cache_read_tokens,
            total_tokens=self.sums.total_tokens,
            cost_usd=self.sums.cost_usd,
            models=tuple(sorted(self.models)),
            projects=tuple(sorted(self.projects)),
            model_breakdowns=self.model_breakdowns(),
        )

    def to_session_row(self, session_id: str) -> SessionRow:
        """Freeze into a session row; the project is the one of the latest event."""
        return SessionRow(
            session_id=session_id,
            project=self.last_project,
            last_activity=self.last_activity,
            input_tokens=self.sums.input_tokens,
            output_tokens=self.sums.output_tokens,
            cache_creation_tokens=self.sums.cache_creation_tokens,
            cache_read_tokens=self.sums.cache_read_tokens,
            total_tokens=self.sums.total_tokens,
            cost_usd=self.sums.cost_usd,
            models=tuple(sorted(self.models)),
            model_breakdowns=self.model_breakdowns(),
        )

    def to_block_row(self, block_start: datetime, block_hours: int, token_limit: int | None) -> BlockRow:
        """Freeze into a block row with an optional percent-of-limit."""
        total_tokens = self.sums.total_tokens
        percent = (total_tokens / token_limit) * 100 if token_limit is not None and token_limit > 0 else None
        return BlockRow(
            block_start=block_start,
            block_end=block_end_for(block_start, block_hours),
            input_tokens=self.sums.input_tokens,
            output_tokens=self.sums.output_tokens,
            cache_creation_tokens=self.sums.cache_creation_tokens,
            cache_read_tokens=self.sums.cache_read_tokens,
            total_tokens=total_tokens,
            cost_usd=self.sums.cost_usd,
            percent_of_limit=percent,
            models=tuple(sorted(self.models)),
            projects=tuple(sorted(self.projects)),
            model_breakdowns=self.model_breakdowns(),
        )


def aggregate(
    events: Iterable[UsageEvent],
    group_key: Callable[[UsageEvent], KeyT],
    event_filter: EventPredicate,
    *,
    breakdown: bool = False,
) -> dict[KeyT, RowAccumulator]:
    """Group filtered events into accumulators keyed by `group_key`."""
    buckets: dict[KeyT, RowAccumulator] = {}
    for event in events:
        if not event_filter(event):
            continue
        key = group_key(event)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = RowAccumulator(breakdown=breakdown)
            buckets[key] = bucket
        bucket.add_event(event)
    return buckets


def calculate_totals(rows: Sequence[_SummedRow]) -> Totals:
    """Sum token counters and cost across rows."""
    sums = TokenSums()
    for row in rows:
        sums += row
    return sums.to_totals()


def fold_model_breakdowns(rows: Sequence[_SummedRow]) -> tuple[ModelBreakdown, ...]:
    """Merge every row's per-model breakdown into one model-keyed list."""
    per_model: dict[str, TokenSums] = {}
    for row in rows:
        for item in row.model_breakdowns:
            sums = per_model.setdefault(item.model, TokenSums())
            sums += item
    return tuple(per_model[model].to_breakdown(model) for model in sorted(per_model))


def sort_rows(rows: list[Row], order: Order) -> list[Row]:
    """Sort rows by key in the requested order."""
    return sorted(rows, key=lambda row: row.key, reverse=order is Order.DESC)


class StatsService:
    """Builds usage reports from normalized events."""

    def __init__(
        self,
        timezone: ZoneInfo | None = None,
        locale: str = "en",
        breakdown: bool = False,
    ) -> None:
        self._timezone = timezone or ZoneInfo("UTC")
        self._locale = locale
        self._breakdown = breakdown

    @property
    def timezone_name(self) -> str:
        """Return the IANA name of the report timezone."""
        return self._timezone.key

    def daily_report(
        self,
        events: Iterable[UsageEvent],
        range_filter: RangeFilter | None = None,
        order: Order = Order.DESC,
        instances: bool = False,
    ) -> UsageReport:
        """Aggregate by local calendar date, optionally split by project."""

        def group_key(event: UsageEvent) -> str:
            key = local_date(event.timestamp, self._timezone).isoformat()
            return with_instance(key, event.project if instances else None)

        return self._usage_report("daily", events, group_key, range_filter or RangeFilter(), order)

    def weekly_report(
        self,
        events: Iterable[UsageEvent],
        range_filter: RangeFilter | None = None,
        order: Order = Order.DESC,
        instances: bool = False,
        start_of_week: WeekStart = WeekStart.MONDAY,
    ) -> UsageReport:
        """Aggregate by the first day of each local week."""

        def group_key(event: UsageEvent) -> str:
            week_start = week_start_for_date(local_date(event.timestamp, self._timezone), start_of_week)
            return with_instance(week_start.isoformat(), event.project if instances else None)

        return self._usage_report("weekly", events, group_key, range_filter or RangeFilter(), order)

    def monthly_report(
        self,
        events: Iterable[UsageEvent],
        range_filter: RangeFilter | None = None,
        order: Order = Order.DESC,
        instances: bool = False,
    ) -> UsageReport:
        """Aggregate by local `(year, month)`."""

        def group_key(event: UsageEvent) -> str:
            key = month_key(local_date(event.timestamp, self._timezone))
            return with_instance(key, event.project if instances else None)

        return self._usage_report("monthly", events, group_key, range_filter or RangeFilter(), order)

    def session_report(
        self,
        events: Iterable[UsageEvent],
        range_filter: RangeFilter | None = None,
    ) -> SessionReport:
        """Aggregate by session id, most recently active first."""
        range_filter = range_filter or RangeFilter()
        buckets = aggregate(
            events,
            lambda event: event.session_id,
            self._range_predicate(range_filter),
            breakdown=self._breakdown,
        )
        rows = [bucket.to_session_row(str(session_id)) for session_id, bucket in buckets.items()]
        rows.sort(key=lambda row: row.last_activity, reverse=True)
        return SessionReport(
            kind="sessions",
            timezone=self.timezone_name,
            locale=self._locale,
            since=range_filter.since,
            until=range_filter.until,
            rows=tuple(rows),
            totals=calculate_totals(rows),
            model_breakdowns=fold_model_breakdowns(rows) if self._breakdown else (),
        )

    def blocks_report(
        self,
        events: Sequence[UsageEvent],
        range_filter: RangeFilter | None = None,
        token_limit: int | None = DEFAULT_TOKEN_LIMIT,
        recent_days: int = DEFAULT_RECENT_DAYS,
        session_length_hours: int = DEFAULT_BLOCK_HOURS,
    ) -> BlocksReport:
        """Aggregate into fixed-length local-time blocks within the recent-days window.

        The recent-days cutoff is measured back from the latest event date across all
        events and is applied before the explicit range filter.
        """
        range_filter = range_filter or RangeFilter()
        block_hours = max(session_length_hours, 1)
        latest_date = max((local_date(event.timestamp, self._timezone) for event in events), default=None)
        cutoff = latest_date - timedelta(days=recent_days) if latest_date is not None else None
        in_range = self._range_predicate(range_filter)

        def event_filter(event: UsageEvent) -> bool:
            if cutoff is not None and local_date(event.timestamp, self._timezone) < cutoff:
                return False
            return in_range(event)

        buckets = aggregate(
            events,
            lambda event: block_start_for(event.timestamp, self._timezone, block_hours),
            event_filter,
            breakdown=self._breakdown,
        )
        effective_limit = token_limit if token_limit is not None and token_limit > 0 else None
        rows = [
            bucket.to_block_row(block_start, block_hours, effective_limit)
            for block_start, bucket in buckets.items()
        ]
        rows.sort(key=lambda row: row.block_start)
        return BlocksReport(
            kind="blocks",
            timezone=self.timezone_name,
            locale=self._locale,
            since=range_filter.since,
            until=range_filter.until,
            recent_days=recent_days,
            session_length_hours=block_hours,
            token_limit=effective_limit,
            rows=tuple(rows),
            totals=calculate_totals(rows),
            model_breakdowns=fold_model_breakdowns(rows) if self._breakdown else (),
        )

    def statusline_report(
        self,
        events: Iterable[UsageEvent],
        range_filter: RangeFilter | None = None,
    ) -> StatuslineReport:
        """Return totals for the most recent local date that has matching usage."""
        buckets = aggregate(
            events,
            lambda event: local_date(event.timestamp, self._timezone),
            self._range_predicate(range_filter or RangeFilter()),
        )
        if not buckets:
            return StatuslineReport(kind="statusline", timezone=self.timezone_name, locale=self._locale, last_date=None)
        last_date = max(buckets)
        return StatuslineReport(
            kind="statusline",
            timezone=self.timezone_name,
            locale=self._locale,
            last_date=last_date,
            totals=buckets[last_date].sums.to_totals(),
        )

    def _usage_report(
        self,
        kind: str,
        events: Iterable[UsageEvent],
        group_key: Callable[[UsageEvent], str],
        range_filter: RangeFilter,
        order: Order,
    ) -> UsageReport:
        buckets = aggregate(events, group_key, self._range_predicate(range_filter), breakdown=self._breakdown)
        rows = sort_rows([bucket.to_row(str(key)) for key, bucket in buckets.items()], order)
        return UsageReport(
            kind=kind,
            timezone=self.timezone_name,
            locale=self._locale,
            since=range_filter.since,
            until=range_filter.until,
            rows=tuple(rows),
            totals=calculate_totals(rows),
            model_breakdowns=fold_model_breakdowns(rows) if self._breakdown else (),
        )

    def _range_predicate(self, range_filter: RangeFilter) -> EventPredicate:
        def predicate(event: UsageEvent) -> bool:
            if not range_filter.includes_project(event.project):
                return False
            return range_filter.includes_date(local_date(event.timestamp, self._timezone))

        return predicate
