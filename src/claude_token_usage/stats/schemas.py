"""Typed schemas used by the stats pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from ..ingestion.schemas import UsageEvent


class Order(str, Enum):
    """Sort order for date-keyed reports."""

    ASC = "asc"
    DESC = "desc"


class WeekStart(str, Enum):
    """First day of a reporting week."""

    SUNDAY = "sunday"
    MONDAY = "monday"

    @property
    def offset_from_sunday(self) -> int:
        """Return 0 for Sunday and 1 for Monday."""
        return 0 if self is WeekStart.SUNDAY else 1


@dataclass(frozen=True)
class RangeFilter:
    """Event filter applied before grouping.

    Attributes:
        since: Inclusive first local date.
        until: Inclusive last local date.
        project: Only events from this project.
    """

    since: date | None = None
    until: date | None = None
    project: str | None = None

    def includes_date(self, event_date: date) -> bool:
        """Return True when a local date falls inside the inclusive range."""
        if self.since is not None and event_date < self.since:
            return False
        if self.until is not None and event_date > self.until:
            return False
        return True

    def includes_project(self, project: str) -> bool:
        """Return True when no project filter is set or the project matches."""
        return self.project is None or project == self.project


@dataclass
class TokenSums:
    """Accumulates token counters and cost."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        """Return the sum of the four token counters."""
        return self.input_tokens + self.output_tokens + self.cache_creation_tokens + self.cache_read_tokens

    def add_event(self, event: UsageEvent) -> None:
        """Add one event's counters and cost."""
        self.input_tokens += event.input_tokens
        self.output_tokens += event.output_tokens
        self.cache_creation_tokens += event.cache_creation_tokens
        self.cache_read_tokens += event.cache_read_tokens
        self.cost_usd += event.cost_usd

    def __iadd__(self, other: "TokenSums | Totals | ModelBreakdown") -> "TokenSums":
        """Mutate this object by adding sums in-place."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_tokens += other.cache_creation_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.cost_usd += other.cost_usd
        return self

    def to_totals(self) -> "Totals":
        """Freeze the running sums into a `Totals` record."""
        return Totals(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens,
            total_tokens=self.total_tokens,
            cost_usd=self.cost_usd,
        )

    def to_breakdown(self, model: str) -> "ModelBreakdown":
        """Freeze the running sums into a per-model breakdown."""
        return ModelBreakdown(
            model=model,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens,
            total_tokens=self.total_tokens,
            cost_usd=self.cost_usd,
        )


@dataclass(frozen=True)
class Totals:
    """Elementwise sums over report rows."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0


@dataclass(frozen=True)
class ModelBreakdown:
    """Per-model decomposition of an aggregate."""

    model: str
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    cost_usd: float


@dataclass(frozen=True)
class Row:
    """One daily, weekly, or monthly report row."""

    key: str
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    cost_usd: float
    models: tuple[str, ...] = ()
    projects: tuple[str, ...] = ()
    model_breakdowns: tuple[ModelBreakdown, ...] = ()


@dataclass(frozen=True)
class SessionRow:
    """One per-session report row."""

    session_id: str
    project: str
    last_activity: datetime
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    cost_usd: float
    models: tuple[str, ...] = ()
    model_breakdowns: tuple[ModelBreakdown, ...] = ()


@dataclass(frozen=True)
class BlockRow:
    """One fixed-length billing block row."""

    block_start: datetime
    block_end: datetime
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    cost_usd: float
    percent_of_limit: float | None = None
    models: tuple[str, ...] = ()
    projects: tuple[str, ...] = ()
    model_breakdowns: tuple[ModelBreakdown, ...] = ()


@dataclass(frozen=True)
class UsageReport:
    """Daily, weekly, or monthly report."""

    kind: str
    timezone: str
    locale: str
    since: date | None
    until: date | None
    rows: tuple[Row, ...]
    totals: Totals
    model_breakdowns: tuple[ModelBreakdown, ...] = ()


@dataclass(frozen=True)
class SessionReport:
    """Per-session report."""

    kind: str
    timezone: str
    locale: str
    since: date | None
    until: date | None
    rows: tuple[SessionRow, ...]
    totals: Totals
    model_breakdowns: tuple[ModelBreakdown, ...] = ()


@dataclass(frozen=True)
class BlocksReport:
    """Billing block report."""

    kind: str
    timezone: str
    locale: str
    since: date | None
    until: date | None
    recent_days: int
    session_length_hours: int
    token_limit: int | None
    rows: tuple[BlockRow, ...]
    totals: Totals
    model_breakdowns: tuple[ModelBreakdown, ...] = ()


@dataclass(frozen=True)
class StatuslineReport:
    """Totals for the most recent day with usage."""

    kind: str
    timezone: str
    locale: str
    last_date: date | None
    totals: Totals = field(default_factory=Totals)
