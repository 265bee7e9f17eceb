"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import asyncio
import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from garoon_calendar_sync.config import validate_config
from garoon_calendar_sync.models import CalendarSyncError
from garoon_calendar_sync.models import ConfigError
from garoon_calendar_sync.models import SyncConfig
from garoon_calendar_sync.sync import CalendarSynchronizer

logger = logging.getLogger(__name__)


def _check_state_db(cfg: SyncConfig) -> tuple[str, str, str] | None:
    db_path = cfg.state_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create state DB directory {db_path.parent}: {e}")
        return ("State database", f"{db_path}: {e}", f"Check permissions on {db_path.parent}")

    if not db_path.exists():
        return None
    try:
        conn = sqlite3.connect(db_path)
        try:
            conn.execute("SELECT 1")
            # BEGIN IMMEDIATE takes the write lock and needs a journal file
            # next to the database, so it also proves the directory is writable.
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error(f"State DB not readable/writable ({db_path}): {e}")
        return (
            "State database",
            f"{db_path}: {e}",
            f"Check permissions on {db_path.parent} "
            f"(journal files must be creatable alongside the DB)",
        )
    return None


async def _check_connections(cfg: SyncConfig) -> dict[str, bool]:
    synchronizer = CalendarSynchronizer(cfg)
    try:
        return await synchronizer.test_connections()
    finally:
        await synchronizer.aclose()


def run_preflight_checks(cfg: SyncConfig, console: Console) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Configuration
    try:
        validate_config(cfg)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        issues.append(("Configuration", str(e), "Edit the config file or pass --config"))
        _print_issues(issues, console)
        return False

    # 2. State DB parent dir writable + DB writable if it exists
    db_issue = _check_state_db(cfg)
    if db_issue:
        issues.append(db_issue)

    # 3. Service reachability
    try:
        connections = asyncio.run(_check_connections(cfg))
    except (CalendarSyncError, ValueError) as e:
        logger.error(f"Cannot set up API clients: {e}")
        issues.append(("Google credentials", str(e), "Check the service-account JSON file"))
    else:
        if not connections["garoon"]:
            issues.append(
                (
                    "Garoon",
                    f"Connection failed: {cfg.garoon.base_url}",
                    "Check base_url, the API token or username/password, and targets",
                )
            )
        if not connections["google"]:
            issues.append(
                (
                    "Google Calendar",
                    f"Connection failed: {cfg.google.calendar_id}",
                    "Share the calendar with the service account's client_email",
                )
            )

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
