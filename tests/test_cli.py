"""
CLI smoke tests for the commands that only read local state.
"""

from typer.testing import CliRunner

from garoon_calendar_sync import cli as cli_module
from garoon_calendar_sync.cli import app
from garoon_calendar_sync.db import StateDatabase
from garoon_calendar_sync.models import CalendarInfo
from garoon_calendar_sync.models import SyncAction

runner = CliRunner()


def _config(tmp_path):
    path = tmp_path / "sync.conf"
    path.write_text("[garoon]\nbase_url = https://example.cybozu.com/g\n")
    return path


def test_status_without_database(tmp_path):
    result = runner.invoke(
        app,
        ["--config", str(_config(tmp_path)), "--state-db", str(tmp_path / "none.db"), "status"],
    )
    assert result.exit_code == 0
    assert "No state database yet" in result.output


def test_status_with_database(tmp_path):
    db_path = tmp_path / "state.db"
    with StateDatabase(db_path) as db:
        db.upsert("G1", "g1", "v1")
        db.commit()

    result = runner.invoke(
        app, ["--config", str(_config(tmp_path)), "--state-db", str(db_path), "status"]
    )
    assert result.exit_code == 0
    assert "State database" in result.output


def test_logs_lists_entries(tmp_path):
    db_path = tmp_path / "state.db"
    with StateDatabase(db_path) as db:
        db.append_log(SyncAction.CREATE, "G1", "g1")
        db.append_log(SyncAction.ERROR, "G2", None, "boom")
        db.commit()

    result = runner.invoke(
        app,
        ["--config", str(_config(tmp_path)), "--state-db", str(db_path), "logs", "--errors"],
    )
    assert result.exit_code == 0
    assert "boom" in result.output
    assert "CREATE" not in result.output


def test_check_reports_invalid_config(tmp_path):
    result = runner.invoke(
        app,
        ["--config", str(_config(tmp_path)), "--state-db", str(tmp_path / "s.db"), "check"],
    )
    assert result.exit_code == 1
    assert "Preflight checks failed" in result.output


def test_sync_rejects_malformed_date_before_preflight(tmp_path):
    db_path = tmp_path / "s.db"
    result = runner.invoke(
        app,
        [
            "--config",
            str(_config(tmp_path)),
            "--state-db",
            str(db_path),
            "sync",
            "--start",
            "2026/03/01",
        ],
    )
    assert result.exit_code == 1
    assert "Invalid start date" in result.output
    assert "Preflight checks failed" not in result.output
    assert not db_path.exists()


def test_list_calendars_without_credentials(tmp_path):
    result = runner.invoke(
        app,
        [
            "--config",
            str(_config(tmp_path)),
            "--state-db",
            str(tmp_path / "s.db"),
            "list-calendars",
        ],
    )
    assert result.exit_code == 1
    assert "credentials" in result.output


def test_list_calendars_prints_table(tmp_path, monkeypatch):
    async def _fake_list(cfg):
        return [
            CalendarInfo("primary", "Me", "owner", primary=True),
            CalendarInfo("team@group.calendar.google.com", "Team", "writer"),
        ]

    monkeypatch.setattr(cli_module, "_list_calendars", _fake_list)
    result = runner.invoke(
        app,
        [
            "--config",
            str(_config(tmp_path)),
            "--state-db",
            str(tmp_path / "s.db"),
            "list-calendars",
        ],
    )
    assert result.exit_code == 0
    assert "team@group.calendar.google.com" in result.output
    assert "(configured)" in result.output
