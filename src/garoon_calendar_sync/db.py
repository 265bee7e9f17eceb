"""
SQLite state persistence for calendar sync tracking.
"""

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path

from garoon_calendar_sync.models import LogEntry
from garoon_calendar_sync.models import SyncAction
from garoon_calendar_sync.models import SyncRecord

# Once the activity log grows past the ceiling only the newest entries survive.
LOG_RETENTION_CEILING = 1000
LOG_RETENTION_KEEP = 500


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class StateDatabase:
    """Manages SQLite state database for sync tracking."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the state database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        """Create the synced_events and sync_logs tables if they don't exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS synced_events (
                source_event_id TEXT PRIMARY KEY,
                destination_event_id TEXT NOT NULL,
                last_synced_at TEXT NOT NULL,
                source_updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_synced_events_destination
                ON synced_events (destination_event_id);
            CREATE TABLE IF NOT EXISTS sync_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                action TEXT NOT NULL,
                source_event_id TEXT,
                destination_event_id TEXT,
                detail TEXT
            );
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Sync records                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _to_record(row: sqlite3.Row) -> SyncRecord:
        return SyncRecord(
            source_event_id=row["source_event_id"],
            destination_event_id=row["destination_event_id"],
            last_synced_at=row["last_synced_at"],
            source_updated_at=row["source_updated_at"],
        )

    def get(self, source_event_id: str) -> SyncRecord | None:
        """Get the sync record for a Garoon event, if any."""
        cursor = self.conn.execute(
            "SELECT * FROM synced_events WHERE source_event_id = ? LIMIT 1",
            (source_event_id,),
        )
        row = cursor.fetchone()
        return self._to_record(row) if row else None

    def upsert(self, source_event_id: str, destination_event_id: str, source_updated_at: str):
        """Insert or replace the record for source_event_id and stamp last_synced_at."""
        self.conn.execute(
            "INSERT INTO synced_events "
            "(source_event_id, destination_event_id, last_synced_at, source_updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(source_event_id) DO UPDATE SET "
            "destination_event_id = excluded.destination_event_id, "
            "last_synced_at = excluded.last_synced_at, "
            "source_updated_at = excluded.source_updated_at",
            (source_event_id, destination_event_id, _utcnow(), source_updated_at),
        )

    def delete_by_source_id(self, source_event_id: str):
        """Delete a sync record by Garoon event ID."""
        self.conn.execute(
            "DELETE FROM synced_events WHERE source_event_id = ?", (source_event_id,)
        )

    def delete_by_destination_id(self, destination_event_id: str):
        """Delete every sync record that points at the given Google event ID."""
        self.conn.execute(
            "DELETE FROM synced_events WHERE destination_event_id = ?",
            (destination_event_id,),
        )

    def list_all(self) -> list[SyncRecord]:
        """Retrieve all sync records."""
        cursor = self.conn.execute(
            "SELECT * FROM synced_events ORDER BY last_synced_at, source_event_id"
        )
        return [self._to_record(row) for row in cursor.fetchall()]

    def prune_older_than(self, days: int, keep: Iterable[str] = ()) -> int:
        """Remove records not synced for ``days`` days.

        Source IDs listed in ``keep`` are never removed: an event that is
        still visible in Garoon must keep its record or the next run would
        create a second copy of it in Google Calendar.
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat(
            timespec="seconds"
        )
        keep_ids = set(keep)
        stale = [
            row["source_event_id"]
            for row in self.conn.execute(
                "SELECT source_event_id FROM synced_events WHERE last_synced_at < ?",
                (cutoff,),
            )
            if row["source_event_id"] not in keep_ids
        ]
        self.conn.executemany(
            "DELETE FROM synced_events WHERE source_event_id = ?",
            [(source_id,) for source_id in stale],
        )
        if stale:
            self.logger.info(f"Pruned {len(stale)} sync record(s) older than {days} days")
        return len(stale)

    # ------------------------------------------------------------------ #
    # Activity log                                                         #
    # ------------------------------------------------------------------ #

    def append_log(
        self,
        action: SyncAction | str,
        source_event_id: str | None = None,
        destination_event_id: str | None = None,
        detail: str | None = None,
    ):
        """Append an entry to the activity log, trimming it past the ceiling."""
        action_name = action.value if isinstance(action, SyncAction) else str(action)
        self.conn.execute(
            "INSERT INTO sync_logs "
            "(timestamp, action, source_event_id, destination_event_id, detail) "
            "VALUES (?, ?, ?, ?, ?)",
            (_utcnow(), action_name, source_event_id or None, destination_event_id or None, detail),
        )
        count = self.conn.execute("SELECT COUNT(*) FROM sync_logs").fetchone()[0]
        if count > LOG_RETENTION_CEILING:
            self.conn.execute(
                "DELETE FROM sync_logs WHERE id NOT IN "
                "(SELECT id FROM sync_logs ORDER BY id DESC LIMIT ?)",
                (LOG_RETENTION_KEEP,),
            )

    def recent_logs(
        self, limit: int = 100, action: SyncAction | str | None = None
    ) -> list[LogEntry]:
        """Return the newest log entries, newest first, optionally of one action."""
        if action is None:
            cursor = self.conn.execute(
                "SELECT * FROM sync_logs ORDER BY id DESC LIMIT ?", (limit,)
            )
        else:
            action_name = action.value if isinstance(action, SyncAction) else str(action)
            cursor = self.conn.execute(
                "SELECT * FROM sync_logs WHERE action = ? ORDER BY id DESC LIMIT ?",
                (action_name, limit),
            )
        return [
            LogEntry(
                id=row["id"],
                timestamp=row["timestamp"],
                action=row["action"],
                source_event_id=row["source_event_id"],
                destination_event_id=row["destination_event_id"],
                detail=row["detail"],
            )
            for row in cursor.fetchall()
        ]

    def summary(self) -> dict[str, int | str | None]:
        """Aggregate counts for the status command."""
        records, last_sync = self.conn.execute(
            "SELECT COUNT(*), MAX(last_synced_at) FROM synced_events"
        ).fetchone()
        logs = self.conn.execute("SELECT COUNT(*) FROM sync_logs").fetchone()[0]
        return {"records": records, "logs": logs, "last_synced_at": last_sync}

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
