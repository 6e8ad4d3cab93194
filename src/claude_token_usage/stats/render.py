"""Rich and JSON rendering helpers for Claude Code usage reports."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

import orjson
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .schemas import (
    BlocksReport,
    ModelBreakdown,
    SessionReport,
    StatuslineReport,
    Totals,
    UsageReport,
)

TABLE_ROW_STYLES = ["white", "yellow"]
COMPACT_WIDTH_THRESHOLD = 140
BLOCKS_COMPACT_WIDTH_THRESHOLD = 120
TUI_MAX_ROWS = 12
SYNTHETIC_MODEL = "<synthetic>"

# Thousands separators by base locale tag.
LOCALE_SEPARATORS = {
    "en": ",",
    "fr": "\u202f",
    "de": ".",
    "es": ".",
    "it": ".",
    "ja": ",",
}
DEFAULT_LOCALE = "en"

Report = UsageReport | SessionReport | BlocksReport | StatuslineReport


def resolve_locale(raw: str | None) -> str:
    """Map a locale tag such as `fr-FR` to a supported base tag, defaulting to `en`."""
    if not raw:
        return DEFAULT_LOCALE
    base = raw.replace("_", "-").split("-", 1)[0].lower()
    return base if base in LOCALE_SEPARATORS else DEFAULT_LOCALE


def format_tokens(value: int, locale: str = DEFAULT_LOCALE) -> str:
    """Format a token count with the locale's thousands separator."""
    separator = LOCALE_SEPARATORS.get(locale, LOCALE_SEPARATORS[DEFAULT_LOCALE])
    return f"{value:,}".replace(",", separator)


def format_tokens_compact(value: int) -> str:
    """Format a token count with a K/M/B suffix."""
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)


def format_cost(value: float) -> str:
    """Format a USD amount with two decimals."""
    return f"${value:,.2f}"


def format_cost_compact(value: float) -> str:
    """Format a USD amount rounded to whole dollars with a K/M suffix."""
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"${value / 1_000:.0f}K"
    return f"${value:.0f}"


def format_model_name(model: str) -> str:
    """Shorten `claude-sonnet-4-20250514` to `sonnet-4`."""
    if not model.startswith("claude-"):
        return model
    rest = model[len("claude-") :]
    name, _, suffix = rest.rpartition("-")
    if name and len(suffix) == 8 and suffix.isdigit():
        return name
    return model


def format_models(models: tuple[str, ...]) -> str:
    names = [format_model_name(model) for model in models if model != SYNTHETIC_MODEL]
    return ", ".join(names) if names else "-"


def shorten_project_name(name: str) -> str:
    """Drop the `-Users-<user>-<dir>-` prefix Claude Code uses for project directories."""
    if not name.startswith("-Users-"):
        return name
    parts = name[len("-Users-") :].split("-", 2)
    return parts[-1]


def format_projects(projects: tuple[str, ...], max_display: int) -> str:
    if not projects:
        return "-"
    shortened = [shorten_project_name(project) for project in projects]
    if len(shortened) <= max_display:
        return ", ".join(shortened)
    return f"{', '.join(shortened[:max_display])}, +{len(shortened) - max_display} more"


def _truncate(value: str, max_len: int) -> str:
    if len(value) <= max_len:
        return value
    return f"{value[: max_len - 3]}..." if max_len > 3 else value[:max_len]


def _max_projects(width: int) -> int:
    if width < 120:
        return 1
    if width < 160:
        return 2
    return 3


def _new_table(title: str, headers: list[str]) -> Table:
    table = Table(
        title=title,
        show_footer=True,
        footer_style="bold yellow",
        header_style="bold cyan",
        title_justify="left",
    )
    for index, header in enumerate(headers):
        table.add_column(header, justify="left" if index == 0 else "right")
    return table


def _set_footer(table: Table, values: list[str]) -> None:
    for column, value in zip(table.columns, values):
        column.footer = value


def build_usage_table(report: UsageReport, compact: bool, locale: str, width: int = 160) -> Table:
    """Build the daily, weekly, or monthly table."""
    title = f"{report.kind.capitalize()} usage"
    max_projects = _max_projects(width)
    totals = report.totals
    if compact:
        table = _new_table(title, ["Period", "In", "Out", "Total", "Cost", "Projects", "Models"])
        for index, row in enumerate(report.rows):
            table.add_row(
                row.key,
                format_tokens_compact(row.input_tokens),
                format_tokens_compact(row.output_tokens),
                format_tokens_compact(row.total_tokens),
                format_cost_compact(row.cost_usd),
                format_projects(row.projects, max_projects),
                format_models(row.models),
                style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
            )
        _set_footer(
            table,
            [
                "Total",
                format_tokens_compact(totals.input_tokens),
                format_tokens_compact(totals.output_tokens),
                format_tokens_compact(totals.total_tokens),
                format_cost_compact(totals.cost_usd),
            ],
        )
        return table

    table = _new_table(title, ["Period", "Input", "Output", "C/W", "C/R", "Total", "Cost", "Projects", "Models"])
    for index, row in enumerate(report.rows):
        table.add_row(
            row.key,
            format_tokens(row.input_tokens, locale),
            format_tokens(row.output_tokens, locale),
            format_tokens(row.cache_creation_tokens, locale),
            format_tokens(row.cache_read_tokens, locale),
            format_tokens(row.total_tokens, locale),
            format_cost(row.cost_usd),
            format_projects(row.projects, max_projects),
            format_models(row.models),
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )
    _set_footer(table, ["Total", *_full_totals(totals, locale)])
    return table


def build_sessions_table(report: SessionReport, compact: bool, locale: str) -> Table:
    """Build the per-session table."""
    totals = report.totals
    if compact:
        table = _new_table("Session usage", ["Session", "Project", "In", "Out", "Total", "Cost", "Models"])
        for index, row in enumerate(report.rows):
            table.add_row(
                _truncate(row.session_id, 12),
                shorten_project_name(row.project),
                format_tokens_compact(row.input_tokens),
                format_tokens_compact(row.output_tokens),
                format_tokens_compact(row.total_tokens),
                format_cost_compact(row.cost_usd),
                format_models(row.models),
                style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
            )
        _set_footer(
            table,
            [
                "TOTAL",
                "",
                format_tokens_compact(totals.input_tokens),
                format_tokens_compact(totals.output_tokens),
                format_tokens_compact(totals.total_tokens),
                format_cost_compact(totals.cost_usd),
            ],
        )
        return table

    table = _new_table(
        "Session usage",
        ["Session", "Project", "Last Activity", "Input", "Output", "C/W", "C/R", "Total", "Cost", "Models"],
    )
    for index, row in enumerate(report.rows):
        table.add_row(
            _truncate(row.session_id, 16),
            shorten_project_name(row.project),
            row.last_activity.isoformat(),
            format_tokens(row.input_tokens, locale),
            format_tokens(row.output_tokens, locale),
            format_tokens(row.cache_creation_tokens, locale),
            format_tokens(row.cache_read_tokens, locale),
            format_tokens(row.total_tokens, locale),
            format_cost(row.cost_usd),
            format_models(row.models),
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )
    _set_footer(table, ["TOTAL", "", "", *_full_totals(totals, locale)])
    return table


def build_blocks_table(report: BlocksReport, compact: bool, locale: str) -> Table:
    """Build the billing block table."""
    totals = report.totals
    if compact:
        table = _new_table("Blocks usage", ["Block", "Total", "%Lim", "Cost", "Models"])
        for index, row in enumerate(report.rows):
            table.add_row(
                row.block_start.isoformat(),
                format_tokens_compact(row.total_tokens),
                f"{row.percent_of_limit:.0f}%" if row.percent_of_limit is not None else "-",
                format_cost_compact(row.cost_usd),
                format_models(row.models),
                style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
            )
        _set_footer(
            table,
            ["TOTAL", format_tokens_compact(totals.total_tokens), "", format_cost_compact(totals.cost_usd)],
        )
        return table

    table = _new_table(
        "Blocks usage",
        ["Block Start", "Block End", "Input", "Output", "C/W", "C/R", "Total", "%Lim", "Cost", "Models"],
    )
    for index, row in enumerate(report.rows):
        table.add_row(
            row.block_start.isoformat(),
            row.block_end.isoformat(),
            format_tokens(row.input_tokens, locale),
            format_tokens(row.output_tokens, locale),
            format_tokens(row.cache_creation_tokens, locale),
            format_tokens(row.cache_read_tokens, locale),
            format_tokens(row.total_tokens, locale),
            f"{row.percent_of_limit:.1f}%" if row.percent_of_limit is not None else "-",
            format_cost(row.cost_usd),
            format_models(row.models),
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )
    total_percent = (
        f"{totals.total_tokens / report.token_limit * 100:.1f}%" if report.token_limit else "-"
    )
    full_totals = _full_totals(totals, locale)
    _set_footer(table, ["TOTAL", "", *full_totals[:5], total_percent, full_totals[5]])
    return table


def build_model_breakdown_table(breakdowns: tuple[ModelBreakdown, ...], locale: str) -> Table:
    """Build the per-model table, most expensive model first."""
    table = Table(title="Model breakdowns", header_style="bold cyan", title_justify="left")
    for index, header in enumerate(["Model", "Input", "Output", "C/W", "C/R", "Total", "Cost"]):
        table.add_column(header, justify="left" if index == 0 else "right")
    for item in sorted(breakdowns, key=lambda item: item.cost_usd, reverse=True):
        table.add_row(
            format_model_name(item.model),
            format_tokens(item.input_tokens, locale),
            format_tokens(item.output_tokens, locale),
            format_tokens(item.cache_creation_tokens, locale),
            format_tokens(item.cache_read_tokens, locale),
            format_tokens(item.total_tokens, locale),
            format_cost(item.cost_usd),
            style="dim",
        )
    return table


def build_blocks_tui(report: BlocksReport, locale: str) -> RenderableType:
    """Build the full-screen live view: a totals panel above the most recent blocks."""
    totals = report.totals
    totals_text = (
        f"Input {format_tokens(totals.input_tokens, locale)}"
        f" | Output {format_tokens(totals.output_tokens, locale)}"
        f" | Cache {format_tokens(totals.cache_creation_tokens + totals.cache_read_tokens, locale)}"
        f" | Total {format_tokens(totals.total_tokens, locale)}"
        f" | Cost ${totals.cost_usd:.4f} (q to quit)"
    )
    table = Table(title="Blocks", header_style="bold", title_justify="left", expand=True)
    table.add_column("Block", justify="left")
    table.add_column("Total", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Models", justify="left")
    for row in report.rows[:TUI_MAX_ROWS]:
        table.add_row(
            row.block_start.isoformat(),
            format_tokens(row.total_tokens, locale),
            format_cost(row.cost_usd),
            ", ".join(row.models) or "-",
        )
    return Group(Panel(totals_text, title="Totals"), table)


def format_statusline(report: StatuslineReport) -> Text:
    """Return the one-line summary of the most recent day."""
    if report.last_date is None:
        return Text("No data")
    totals = report.totals
    line = Text()
    line.append(report.last_date.isoformat(), style="bold cyan")
    for label, value in (
        ("in", format_tokens_compact(totals.input_tokens)),
        ("out", format_tokens_compact(totals.output_tokens)),
        ("total", format_tokens_compact(totals.total_tokens)),
    ):
        line.append(" | ", style="dim")
        line.append(label, style="dim")
        line.append(f" {value}")
    line.append(" | ", style="dim")
    line.append(format_cost_compact(totals.cost_usd), style="bold yellow")
    return line


def build_report_renderable(
    report: UsageReport | SessionReport | BlocksReport,
    compact: bool,
    breakdown: bool,
    width: int = 160,
) -> RenderableType:
    """Build the table view of a report, including the breakdown table when requested."""
    locale = report.locale
    if not report.rows:
        return Text(_empty_message(report))
    if isinstance(report, UsageReport):
        table = build_usage_table(report, compact or width < COMPACT_WIDTH_THRESHOLD, locale, width)
    elif isinstance(report, SessionReport):
        table = build_sessions_table(report, compact or width < COMPACT_WIDTH_THRESHOLD, locale)
    else:
        table = build_blocks_table(report, compact or width < BLOCKS_COMPACT_WIDTH_THRESHOLD, locale)
    if breakdown and report.model_breakdowns:
        return Group(table, Text(""), build_model_breakdown_table(report.model_breakdowns, locale))
    return table


def render_report(
    report: Report,
    console: Console,
    *,
    compact: bool = False,
    breakdown: bool = False,
) -> None:
    """Print a report as rich tables."""
    if isinstance(report, StatuslineReport):
        console.print(format_statusline(report))
        return
    console.print(build_report_renderable(report, compact, breakdown, console.width))


def report_to_dict(report: Report) -> dict[str, Any]:
    """Convert a report into a JSON-ready mapping.

    Empty `model_breakdowns` lists and absent `percent_of_limit` values are omitted.
    """
    return _prune(asdict(report))


def render_json(report: Report) -> str:
    """Serialize a report as indented JSON."""
    return orjson.dumps(report_to_dict(report), option=orjson.OPT_INDENT_2).decode("utf-8")


def _prune(value: Any) -> Any:
    if isinstance(value, dict):
        pruned = {}
        for key, item in value.items():
            if key == "model_breakdowns" and not item:
                continue
            if key == "percent_of_limit" and item is None:
                continue
            pruned[key] = _prune(item)
        return pruned
    if isinstance(value, (list, tuple)):
        return [_prune(item) for item in value]
    return value


def _full_totals(totals: Totals, locale: str) -> list[str]:
    return [
        format_tokens(totals.input_tokens, locale),
        format_tokens(totals.output_tokens, locale),
        format_tokens(totals.cache_creation_tokens, locale),
        format_tokens(totals.cache_read_tokens, locale),
        format_tokens(totals.total_tokens, locale),
        format_cost(totals.cost_usd),
    ]


def _empty_message(report: UsageReport | SessionReport | BlocksReport) -> str:
    if isinstance(report, SessionReport):
        return "No matching session usage."
    if isinstance(report, BlocksReport):
        return "No matching block usage."
    return f"No matching usage for {report.kind}"
