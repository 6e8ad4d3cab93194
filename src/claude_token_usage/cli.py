"""CLI entrypoints for Claude Code token usage reports."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import signal
import sys
import threading
from typing import Any

from rich.console import Console, RenderableType
from rich.live import Live
from rich.text import Text
import typer

from model_pricing import PriceSpecConfig, build_pricing_index, load_pricing_table

from .config import (
    ConfigError,
    FileConfig,
    ReportSettings,
    load_file_config,
    parse_date,
    parse_timezone,
    resolve_report_settings,
)
from .ingestion.errors import DataDirectoryError, LiveRefreshError
from .ingestion.schemas import CostMode, NormalizationContext, UsageEvent
from .ingestion.service import EventLoader
from .ingestion.source_reader import discover_jsonl_files, validate_data_dirs
from .live.loop import FileChangeNotifier, LiveRefreshLoop
from .live.source import LiveTailSource
from .paths import resolve_data_dirs
from .stats.render import (
    build_blocks_tui,
    build_report_renderable,
    render_json,
    render_report,
    resolve_locale,
)
from .stats.schemas import BlocksReport, Order, RangeFilter, WeekStart
from .stats.service import StatsService

LOGGER = logging.getLogger(__name__)
QUIT_KEYS = ("q", "Q", "\x1b")
GLOBAL_SETTING_KEYS = ("timezone", "locale", "json", "compact", "breakdown", "offline", "cost_mode")

TYPER_APP = typer.Typer(help="Claude Code token usage reports.", invoke_without_command=True)


@dataclass
class GlobalOptions:
    """Options shared by every report command."""

    file_config: FileConfig
    data_dirs: list[Path] | None = None
    workers: int | None = None
    cli_values: dict[str, Any] = field(default_factory=dict)


@TYPER_APP.callback()
def main(
    ctx: typer.Context,
    data_dirs: list[Path] | None = typer.Option(
        None,
        "--data-dir",
        help="Claude data directory containing a `projects/` tree. Repeatable.",
    ),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="JSON config file path."),
    timezone: str | None = typer.Option(
        None,
        "--timezone",
        "-tz",
        help="Timezone for grouping (e.g., 'UTC', 'America/New_York'). Defaults to UTC.",
    ),
    locale: str | None = typer.Option(None, "--locale", help="Locale for number formatting (en, fr, de, es, it, ja)."),
    json: bool | None = typer.Option(None, "--json/--no-json", help="Print the report as JSON."),
    compact: bool | None = typer.Option(None, "--compact/--no-compact", help="Use the narrow table layout."),
    breakdown: bool | None = typer.Option(None, "--breakdown/--no-breakdown", help="Include per-model breakdowns."),
    offline: bool | None = typer.Option(None, "--offline/--no-offline", help="Use bundled pricing only."),
    cost_mode: CostMode | None = typer.Option(None, "--cost-mode", help="How event costs are chosen."),
    workers: int | None = typer.Option(None, "--workers", min=1, help="Parallel file parsing workers."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Report token usage and costs from Claude Code JSONL logs. Runs `daily` when no command is given."""
    _configure_logging(verbose)
    try:
        file_config = load_file_config(config_path)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc

    ctx.obj = GlobalOptions(
        file_config=file_config,
        data_dirs=data_dirs or None,
        workers=workers,
        cli_values=_explicit_values(ctx, GLOBAL_SETTING_KEYS),
    )
    if ctx.invoked_subcommand is None:
        _run_report(ctx.obj, "daily", {})


@TYPER_APP.command("daily")
def daily_command(
    ctx: typer.Context,
    since: str | None = typer.Option(None, "--since", help="Include only usage on/after this date (YYYY-MM-DD)."),
    until: str | None = typer.Option(None, "--until", help="Include only usage on/before this date (YYYY-MM-DD)."),
    project: str | None = typer.Option(None, "--project", help="Include only this project."),
    instances: bool | None = typer.Option(None, "--instances/--no-instances", help="Split rows per project."),
    order: Order | None = typer.Option(None, "--order", help="Row order by date."),
) -> None:
    """Usage grouped by calendar day."""
    _run_report(ctx.obj, "daily", _command_values(ctx))


@TYPER_APP.command("weekly")
def weekly_command(
    ctx: typer.Context,
    since: str | None = typer.Option(None, "--since", help="Include only usage on/after this date (YYYY-MM-DD)."),
    until: str | None = typer.Option(None, "--until", help="Include only usage on/before this date (YYYY-MM-DD)."),
    project: str | None = typer.Option(None, "--project", help="Include only this project."),
    instances: bool | None = typer.Option(None, "--instances/--no-instances", help="Split rows per project."),
    order: Order | None = typer.Option(None, "--order", help="Row order by week start."),
    start_of_week: WeekStart | None = typer.Option(None, "--start-of-week", help="First day of the week."),
) -> None:
    """Usage grouped by week."""
    _run_report(ctx.obj, "weekly", _command_values(ctx))


@TYPER_APP.command("monthly")
def monthly_command(
    ctx: typer.Context,
    since: str | None = typer.Option(None, "--since", help="Include only usage on/after this date (YYYY-MM-DD)."),
    until: str | None = typer.Option(None, "--until", help="Include only usage on/before this date (YYYY-MM-DD)."),
    project: str | None = typer.Option(None, "--project", help="Include only this project."),
    instances: bool | None = typer.Option(None, "--instances/--no-instances", help="Split rows per project."),
    order: Order | None = typer.Option(None, "--order", help="Row order by month."),
) -> None:
    """Usage grouped by calendar month."""
    _run_report(ctx.obj, "monthly", _command_values(ctx))


@TYPER_APP.command("sessions")
def sessions_command(
    ctx: typer.Context,
    since: str | None = typer.Option(None, "--since", help="Include only usage on/after this date (YYYY-MM-DD)."),
    until: str | None = typer.Option(None, "--until", help="Include only usage on/before this date (YYYY-MM-DD)."),
    project: str | None = typer.Option(None, "--project", help="Include only this project."),
    instances: bool | None = typer.Option(None, "--instances/--no-instances", help="Accepted for symmetry; no effect."),
    order: Order | None = typer.Option(None, "--order", help="Accepted for symmetry; sessions sort by activity."),
) -> None:
    """Usage grouped by session, most recently active first."""
    _run_report(ctx.obj, "sessions", _command_values(ctx))


@TYPER_APP.command("blocks")
def blocks_command(
    ctx: typer.Context,
    since: str | None = typer.Option(None, "--since", help="Include only usage on/after this date (YYYY-MM-DD)."),
    until: str | None = typer.Option(None, "--until", help="Include only usage on/before this date (YYYY-MM-DD)."),
    project: str | None = typer.Option(None, "--project", help="Include only this project."),
    instances: bool | None = typer.Option(None, "--instances/--no-instances", help="Accepted for symmetry; no effect."),
    order: Order | None = typer.Option(None, "--order", help="Accepted for symmetry; blocks sort by start."),
    recent_days: int | None = typer.Option(None, "--recent-days", min=0, help="Days back from the latest event."),
    token_limit: int | None = typer.Option(None, "--token-limit", min=0, help="Token limit per block; 0 disables."),
    session_length_hours: int | None = typer.Option(
        None, "--session-length-hours", min=1, help="Block length in hours."
    ),
    live: bool | None = typer.Option(None, "--live/--no-live", help="Keep refreshing as logs grow."),
    refresh_seconds: int | None = typer.Option(None, "--refresh-seconds", min=1, help="Live refresh interval."),
    tui: bool | None = typer.Option(None, "--tui/--no-tui", help="Full-screen live view; press q to quit."),
) -> None:
    """Usage grouped into fixed-length billing blocks."""
    _run_report(ctx.obj, "blocks", _command_values(ctx))


@TYPER_APP.command("statusline")
def statusline_command(
    ctx: typer.Context,
    since: str | None = typer.Option(None, "--since", help="Include only usage on/after this date (YYYY-MM-DD)."),
    until: str | None = typer.Option(None, "--until", help="Include only usage on/before this date (YYYY-MM-DD)."),
    project: str | None = typer.Option(None, "--project", help="Include only this project."),
    instances: bool | None = typer.Option(None, "--instances/--no-instances", help="Accepted for symmetry; no effect."),
    order: Order | None = typer.Option(None, "--order", help="Accepted for symmetry; no effect."),
) -> None:
    """One-line summary of the most recent day with usage."""
    _run_report(ctx.obj, "statusline", _command_values(ctx))


def _explicit_values(ctx: typer.Context, keys: tuple[str, ...] | list[str]) -> dict[str, Any]:
    """Return the options the user actually passed; None means unset so config values can fill it."""
    return {key: ctx.params[key] for key in keys if ctx.params.get(key) is not None}


def _command_values(ctx: typer.Context) -> dict[str, Any]:
    """Collect explicit subcommand options, parsing date filters."""
    values = _explicit_values(ctx, list(ctx.params))
    try:
        for key in ("since", "until"):
            if key in values:
                values[key] = parse_date(values[key], f"--{key}")
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return values


def _run_report(options: GlobalOptions, command: str, command_values: dict[str, Any]) -> None:
    """Resolve settings, load events, and print one report."""
    try:
        settings = resolve_report_settings(options.file_config, command, {**options.cli_values, **command_values})
        timezone = parse_timezone(settings.timezone)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc

    data_dirs = resolve_data_dirs(options.data_dirs)
    try:
        validate_data_dirs(data_dirs)
    except DataDirectoryError as exc:
        raise typer.BadParameter(str(exc)) from exc

    files = discover_jsonl_files(data_dirs)
    if not files:
        typer.echo(f"No Claude JSONL files found. Looked under: {', '.join(str(path) for path in data_dirs)}")
        return

    pricing_table = load_pricing_table(PriceSpecConfig(offline=settings.offline))
    context = NormalizationContext(pricing_index=build_pricing_index(pricing_table), cost_mode=settings.cost_mode)
    result = EventLoader(context, max_workers=options.workers).load(files)
    if not result.events:
        typer.echo("No usage entries parsed from JSONL files.")
        return

    service = StatsService(timezone=timezone, locale=resolve_locale(settings.locale), breakdown=settings.breakdown)
    range_filter = RangeFilter(since=settings.since, until=settings.until, project=settings.project)

    if command == "blocks" and (settings.live or settings.tui):
        source = LiveTailSource.from_existing(data_dirs, files, result.events, context)
        _run_live_blocks(source, service, range_filter, settings, data_dirs)
        return

    report = _build_report(service, settings, result.events, range_filter)
    if settings.json:
        typer.echo(render_json(report))
        return
    render_report(report, Console(), compact=settings.compact, breakdown=settings.breakdown)


def _build_report(
    service: StatsService,
    settings: ReportSettings,
    events: list[UsageEvent],
    range_filter: RangeFilter,
):
    """Dispatch to the report builder for `settings.command`."""
    if settings.command == "daily":
        return service.daily_report(events, range_filter, settings.order, settings.instances)
    if settings.command == "weekly":
        return service.weekly_report(events, range_filter, settings.order, settings.instances, settings.start_of_week)
    if settings.command == "monthly":
        return service.monthly_report(events, range_filter, settings.order, settings.instances)
    if settings.command == "sessions":
        return service.session_report(events, range_filter)
    if settings.command == "blocks":
        return _build_blocks_report(service, settings, events, range_filter)
    if settings.command == "statusline":
        return service.statusline_report(events, range_filter)
    raise ValueError(f"Unknown report command: {settings.command}")


def _build_blocks_report(
    service: StatsService,
    settings: ReportSettings,
    events: list[UsageEvent],
    range_filter: RangeFilter,
) -> BlocksReport:
    return service.blocks_report(
        events,
        range_filter,
        token_limit=settings.token_limit,
        recent_days=settings.recent_days,
        session_length_hours=settings.session_length_hours,
    )


def _run_live_blocks(
    source: LiveTailSource,
    service: StatsService,
    range_filter: RangeFilter,
    settings: ReportSettings,
    data_dirs: list[Path],
) -> None:
    """Re-aggregate and redraw the blocks report on every refresh until stopped."""
    console = Console()

    with Live(console=console, screen=settings.tui, auto_refresh=False) as live:

        def on_tick(events: list[UsageEvent]) -> None:
            report = _build_blocks_report(service, settings, events, range_filter)
            renderable: RenderableType
            if settings.tui:
                renderable = build_blocks_tui(report, report.locale)
            elif settings.json:
                renderable = Text(render_json(report))
            else:
                renderable = build_report_renderable(report, settings.compact, settings.breakdown, console.width)
            live.update(renderable, refresh=True)

        loop = LiveRefreshLoop(source, on_tick, refresh_seconds=settings.refresh_seconds)
        notifier = FileChangeNotifier(data_dirs, loop.notify)
        previous_handlers = _install_stop_handlers(loop)
        notifier.start()
        if settings.tui and sys.stdin.isatty():
            _start_key_reader(loop)
        try:
            loop.run()
        except LiveRefreshError as exc:
            LOGGER.error("Live refresh failed: %s", exc)
            typer.echo(f"Live refresh failed: {exc}", err=True)
            raise typer.Exit(code=1) from exc
        finally:
            notifier.stop()
            _restore_handlers(previous_handlers)


def _install_stop_handlers(loop: LiveRefreshLoop) -> dict[int, Any]:
    """Route SIGINT and SIGTERM to a cooperative loop stop."""

    def _stop(signum, frame):
        loop.stop()

    previous: dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, _stop)
        except ValueError:
            # Not on the main thread.
            continue
    return previous


def _restore_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def _start_key_reader(loop: LiveRefreshLoop) -> threading.Thread:
    """Stop the loop when `q` or Esc is pressed."""

    def read_keys() -> None:
        while not loop.stopped:
            try:
                key = typer.getchar()
            except (EOFError, KeyboardInterrupt, OSError):
                loop.stop()
                return
            if key in QUIT_KEYS:
                loop.stop()
                return

    reader = threading.Thread(target=read_keys, name="tui-key-reader", daemon=True)
    reader.start()
    return reader


def _configure_logging(verbose: bool) -> None:
    """Initialize default logging for CLI usage."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def module_cli_entry_point():
    TYPER_APP()
