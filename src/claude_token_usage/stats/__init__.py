"""Aggregation and rendering of Claude Code usage reports."""

from .render import render_json, render_report, report_to_dict
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
    Totals,
    UsageReport,
    WeekStart,
)
from .service import StatsService, aggregate, calculate_totals, fold_model_breakdowns

__all__ = [
    "BlockRow",
    "BlocksReport",
    "ModelBreakdown",
    "Order",
    "RangeFilter",
    "Row",
    "SessionReport",
    "SessionRow",
    "StatsService",
    "StatuslineReport",
    "Totals",
    "UsageReport",
    "WeekStart",
    "aggregate",
    "calculate_totals",
    "fold_model_breakdowns",
    "render_json",
    "render_report",
    "report_to_dict",
]
