"""
Command-line interface for Garoon Calendar Sync.
"""

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Annotated

import google.auth.exceptions
import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from garoon_calendar_sync.config import load_config
from garoon_calendar_sync.db import StateDatabase
from garoon_calendar_sync.garoon_client import validate_date_range
from garoon_calendar_sync.google_client import GoogleCalendarClient
from garoon_calendar_sync.google_client import ServiceAccountTokenProvider
from garoon_calendar_sync.models import DEFAULT_CONFIG
from garoon_calendar_sync.models import CalendarInfo
from garoon_calendar_sync.models import CalendarSyncError
from garoon_calendar_sync.models import DateRangeError
from garoon_calendar_sync.models import SyncConfig
from garoon_calendar_sync.models import SyncStats
from garoon_calendar_sync.preflight import run_preflight_checks
from garoon_calendar_sync.sync import CalendarSynchronizer

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="One-way sync of Garoon schedules into a Google Calendar.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    state_db: Path | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    state_db: Annotated[
        Path | None,
        typer.Option("--state-db", help="State DB path (overrides [database] path)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.state_db = state_db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _build_config() -> SyncConfig:
    try:
        cfg = load_config(state.config_path, state.state_db)
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    cfg.verbose = state.verbose
    return cfg


async def _sync_once(
    cfg: SyncConfig, start: str | None, end: str | None, dry_run: bool
) -> SyncStats:
    synchronizer = CalendarSynchronizer(cfg)
    try:
        return await synchronizer.run(start, end, dry_run=dry_run)
    finally:
        await synchronizer.aclose()


async def _sync_forever(cfg: SyncConfig) -> None:
    synchronizer = CalendarSynchronizer(cfg)
    try:
        await synchronizer.run_periodically(cfg.interval_minutes)
    finally:
        await synchronizer.aclose()


async def _list_calendars(cfg: SyncConfig) -> list[CalendarInfo]:
    client = GoogleCalendarClient(
        cfg.google.calendar_id, ServiceAccountTokenProvider(cfg.google.credentials)
    )
    try:
        return await client.list_calendars()
    finally:
        await client.aclose()


def _print_results(stats: SyncStats) -> None:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(stats.added))
    results.add_row("Updated", str(stats.updated))
    results.add_row("Deleted", str(stats.deleted))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

_START = Annotated[
    str | None,
    typer.Option("--start", "-s", help="First day to sync, YYYY-MM-DD (default: today)"),
]
_END = Annotated[
    str | None,
    typer.Option("--end", "-e", help="Last day to sync, YYYY-MM-DD (default: today + days)"),
]
_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]


@app.command()
def sync(start: _START = None, end: _END = None, dry_run: _DRY_RUN = False) -> None:
    """Run one Garoon → Google synchronization pass."""
    cfg = _build_config()
    default_start, default_end = CalendarSynchronizer.default_range_for(cfg.days)
    try:
        validate_date_range(start or default_start, end or default_end)
    except DateRangeError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    info = Text()
    info.append("  Garoon:   ", style="bold")
    info.append(f"{cfg.garoon.base_url}\n")
    info.append(f"            {', '.join(str(t) for t in cfg.garoon.targets)}\n", style="dim")
    info.append("  Google:   ", style="bold")
    info.append(f"{cfg.google.calendar_id}\n")
    info.append("  Range:    ", style="bold")
    info.append(f"{start or default_start} → {end or default_end}")
    if cfg.exclude_private:
        info.append("\n  Private:  ")
        info.append("excluded", style="yellow")
    if dry_run:
        info.append("\n  Mode:     ")
        info.append("DRY RUN", style="bold magenta")
    console.print(Panel(info, title="[bold]Garoon Calendar Sync[/bold]"))

    try:
        stats = asyncio.run(_sync_once(cfg, start, end, dry_run))
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e

    # Per-event errors are reported, not fatal: they are retried next run
    _print_results(stats)


@app.command()
def schedule() -> None:
    """Check connections, sync now, then keep syncing every interval_minutes."""
    cfg = _build_config()
    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    console.print(
        f"[green]Connections OK.[/] Syncing every [cyan]{cfg.interval_minutes}[/] minute(s); "
        f"press Ctrl+C to stop."
    )
    try:
        asyncio.run(_sync_forever(cfg))
    except KeyboardInterrupt:
        console.print("[yellow]Scheduler stopped[/]")


@app.command()
def check() -> None:
    """Validate configuration, state database and service connectivity."""
    cfg = _build_config()
    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)
    console.print(Panel(Text("All checks passed ✓", style="bold green"), expand=False))


@app.command()
def status() -> None:
    """Show sync configuration and state database summary."""
    cfg = _build_config()
    config_exists = state.config_path.exists()
    db_exists = cfg.state_db_path.exists()

    cfg_info = Text()
    cfg_info.append("  Config:   ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  State DB: ", style="bold")
    cfg_info.append(str(cfg.state_db_path) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    cfg_info.append("\n\n  Garoon:   ", style="bold")
    cfg_info.append(cfg.garoon.base_url or "(not set)")
    cfg_info.append("\n  Targets:  ", style="bold")
    cfg_info.append(", ".join(str(t) for t in cfg.garoon.targets))
    cfg_info.append("\n  Google:   ", style="bold")
    cfg_info.append(cfg.google.calendar_id)
    cfg_info.append("\n  Window:   ", style="bold")
    cfg_info.append(f"{cfg.days} day(s), every {cfg.interval_minutes} min")
    cfg_info.append("\n  Teams:    ", style="bold")
    cfg_info.append("configured" if cfg.teams.webhook_url else "disabled")

    console.print(Panel(cfg_info, title="[bold]Garoon Calendar Sync Status[/bold]"))

    if not db_exists:
        console.print(
            "[yellow]No state database yet, run[/] "
            "[cyan]garoon-calendar-sync sync[/] "
            "[yellow]to create it.[/]"
        )
        return

    with StateDatabase(cfg.state_db_path) as state_db:
        summary = state_db.summary()

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Tracked", justify="right")
    table.add_column("Log entries", justify="right")
    table.add_column("Last sync")
    table.add_row(
        str(summary["records"]), str(summary["logs"]), str(summary["last_synced_at"] or "—")
    )
    console.print(Panel(table, title="[bold]State database[/bold]", expand=False))


@app.command("list-calendars")
def list_calendars() -> None:
    """List the Google calendars the service account can see."""
    cfg = _build_config()
    try:
        calendars = asyncio.run(_list_calendars(cfg))
    except (
        CalendarSyncError,
        httpx.HTTPError,
        google.auth.exceptions.GoogleAuthError,
        ValueError,
    ) as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    if not calendars:
        console.print(
            "[yellow]No calendars found.[/] Share a calendar with the service account's "
            "client_email, then run this again."
        )
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Calendar ID", overflow="fold")
    table.add_column("Access")
    for i, calendar in enumerate(calendars, 1):
        name = Text(calendar.summary)
        if calendar.id == cfg.google.calendar_id:
            name.append(" (configured)", style="green")
        table.add_row(str(i), name, calendar.id, calendar.access_role)
    console.print(table)
    console.print(
        "[dim]Copy a Calendar ID into the google section's [cyan]calendar_id[/cyan] "
        "setting.[/dim]"
    )


_ACTION_STYLES = {
    "CREATE": "green",
    "UPDATE": "cyan",
    "DELETE": "magenta",
    "UNCHANGED": "dim",
    "ERROR": "bold red",
}


@app.command()
def logs(
    limit: Annotated[int, typer.Option("--limit", "-l", help="Number of entries to show")] = 50,
    errors_only: Annotated[bool, typer.Option("--errors", help="Show ERROR entries only")] = False,
) -> None:
    """Show the most recent sync activity."""
    cfg = _build_config()
    if not cfg.state_db_path.exists():
        console.print("[yellow]No state database yet, nothing has been synced.[/]")
        return

    with StateDatabase(cfg.state_db_path) as state_db:
        entries = state_db.recent_logs(limit, action="ERROR" if errors_only else None)

    if not entries:
        console.print("[yellow]No log entries.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Time", no_wrap=True)
    table.add_column("Action")
    table.add_column("Garoon ID")
    table.add_column("Google ID", overflow="fold")
    table.add_column("Detail", overflow="fold")
    for entry in entries:
        table.add_row(
            entry.timestamp,
            Text(entry.action, style=_ACTION_STYLES.get(entry.action, "")),
            entry.source_event_id or "—",
            entry.destination_event_id or "—",
            entry.detail or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
