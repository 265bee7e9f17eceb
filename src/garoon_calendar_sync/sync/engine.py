"""
Garoon → Google one-way reconciliation.
"""

import asyncio
import logging
import sqlite3
from collections.abc import Iterable
from typing import Protocol

from garoon_calendar_sync.db import StateDatabase
from garoon_calendar_sync.models import DestinationEvent
from garoon_calendar_sync.models import Scope
from garoon_calendar_sync.models import SourceEvent
from garoon_calendar_sync.models import SyncAction
from garoon_calendar_sync.models import SyncRecord
from garoon_calendar_sync.models import SyncStats
from garoon_calendar_sync.models import UnreadableSourceEvent
from garoon_calendar_sync.models import Visibility
from garoon_calendar_sync.sync.translate import EventTranslator

DEFAULT_BATCH_SIZE = 5


class EventSource(Protocol):
    async def fetch_events(
        self, scopes: list[Scope], start_date: str, end_date: str
    ) -> list[SourceEvent | UnreadableSourceEvent]: ...

    async def test_connection(self, scopes: list[Scope]) -> bool: ...


class EventDestination(Protocol):
    async def create(self, event: DestinationEvent) -> str: ...

    async def update(self, event_id: str, event: DestinationEvent) -> None: ...

    async def delete(self, event_id: str) -> bool: ...

    async def get(self, event_id: str) -> DestinationEvent | None: ...

    async def test_connection(self) -> bool: ...


async def _create_event(
    event: SourceEvent,
    stats: SyncStats,
    logger,
    destination: EventDestination,
    state_db: StateDatabase,
    default_timezone: str,
    dry_run: bool,
    detail: str | None = None,
):
    """Create the Google copy of a Garoon event and record the pair."""
    if dry_run:
        logger.info(f"[DRY RUN] Would CREATE event: {event.id} ({event.title})")
        stats.added += 1
        return

    translated = EventTranslator.translate(event, default_timezone)
    destination_id = await destination.create(translated)

    state_db.upsert(event.id, destination_id, event.updated_at)
    state_db.append_log(SyncAction.CREATE, event.id, destination_id, detail)
    state_db.commit()
    stats.added += 1
    logger.debug(f"Created event {event.id} as {destination_id}")


async def _update_event(
    event: SourceEvent,
    record: SyncRecord,
    stats: SyncStats,
    logger,
    destination: EventDestination,
    state_db: StateDatabase,
    default_timezone: str,
    dry_run: bool,
):
    """Push a changed Garoon event; recreate it if the Google copy vanished."""
    destination_id = record.destination_event_id

    if dry_run:
        logger.info(f"[DRY RUN] Would UPDATE event: {event.id} (google: {destination_id})")
        stats.updated += 1
        return

    existing = await destination.get(destination_id)
    if existing is None:
        logger.warning(
            f"Google event {destination_id} for {event.id} no longer exists, recreating"
        )
        await _create_event(
            event,
            stats,
            logger,
            destination,
            state_db,
            default_timezone,
            dry_run,
            detail=f"recreated: previous Google event {destination_id} was missing",
        )
        return

    translated = EventTranslator.translate(event, default_timezone)
    await destination.update(destination_id, translated)

    state_db.upsert(event.id, destination_id, event.updated_at)
    state_db.append_log(SyncAction.UPDATE, event.id, destination_id)
    state_db.commit()
    stats.updated += 1
    logger.debug(f"Updated event {event.id} (google: {destination_id})")


async def _sync_event(
    event: SourceEvent,
    stats: SyncStats,
    logger,
    destination: EventDestination,
    state_db: StateDatabase,
    default_timezone: str,
    dry_run: bool,
):
    """Classify one Garoon event against its record and act on it."""
    args = (stats, logger, destination, state_db, default_timezone, dry_run)
    record = state_db.get(event.id)

    if record is None:
        await _create_event(event, *args)
    elif record.source_updated_at != event.updated_at:
        await _update_event(event, record, *args)
    else:
        logger.debug(f"Unchanged: {event.id}")
        if not dry_run:
            state_db.append_log(SyncAction.UNCHANGED, event.id, record.destination_event_id)
            state_db.commit()


async def _delete_orphans(
    source_ids: set[str],
    stats: SyncStats,
    logger,
    destination: EventDestination,
    state_db: StateDatabase,
    dry_run: bool,
) -> set[str]:
    """Delete Google events whose Garoon event is no longer fetched.

    Returns the Garoon IDs whose Google copy could not be deleted; their
    records stay so the next run tries again.
    """
    failed: set[str] = set()
    for record in state_db.list_all():
        source_id = record.source_event_id
        destination_id = record.destination_event_id

        if not source_id:
            # Corrupt row: nothing to match it against, drop it without touching Google
            logger.warning(f"Removing sync record without a Garoon ID (google: {destination_id})")
            if not dry_run:
                state_db.delete_by_destination_id(destination_id)
                state_db.commit()
            continue

        if source_id in source_ids:
            continue

        if dry_run:
            logger.info(f"[DRY RUN] Would DELETE event: {source_id} (google: {destination_id})")
            stats.deleted += 1
            continue

        try:
            existed = await destination.delete(destination_id)
        except sqlite3.Error:
            raise
        except Exception as e:
            logger.error(f"Failed to delete {destination_id} (garoon: {source_id}): {e}")
            state_db.append_log(SyncAction.ERROR, source_id, destination_id, str(e))
            state_db.commit()
            stats.errors += 1
            failed.add(source_id)
            continue

        state_db.delete_by_source_id(source_id)
        state_db.append_log(
            SyncAction.DELETE,
            source_id,
            destination_id,
            None if existed else "already absent from Google Calendar",
        )
        state_db.commit()
        stats.deleted += 1
        logger.debug(f"Deleted event {source_id} (google: {destination_id})")
    return failed


def _batches(events: list[SourceEvent], size: int) -> Iterable[list[SourceEvent]]:
    for offset in range(0, len(events), size):
        yield events[offset : offset + size]


async def run_sync(
    source: EventSource,
    destination: EventDestination,
    state_db: StateDatabase,
    scopes: list[Scope],
    start_date: str,
    end_date: str,
    *,
    exclude_private: bool = True,
    batch_size: int = DEFAULT_BATCH_SIZE,
    default_timezone: str = "Asia/Tokyo",
    keep_days: int | None = None,
    dry_run: bool = False,
    logger: logging.Logger | None = None,
) -> SyncStats:
    """Execute one reconciliation pass and return its statistics.

    Events are processed in batches: batches run one after another, the
    events of a batch run concurrently.  A failure inside one event's
    pipeline is counted and logged without affecting any other event.
    Orphan deletion runs last, against every ID fetched in this pass.
    """
    logger = logger or logging.getLogger(__name__)
    stats = SyncStats()

    logger.info(f"Fetching Garoon events from {start_date} to {end_date}...")
    fetched = await source.fetch_events(scopes, start_date, end_date)
    source_ids = {event.id for event in fetched}

    events: list[SourceEvent] = []
    for event in fetched:
        if isinstance(event, UnreadableSourceEvent):
            logger.error(f"Cannot sync unreadable Garoon event {event.id}: {event.reason}")
            stats.errors += 1
            if not dry_run:
                state_db.append_log(SyncAction.ERROR, event.id, None, event.reason)
                state_db.commit()
        else:
            events.append(event)

    if exclude_private:
        targets = [e for e in events if e.visibility != Visibility.RESTRICTED]
        if len(targets) != len(events):
            logger.info(f"Skipping {len(events) - len(targets)} private event(s)")
    else:
        targets = list(events)

    logger.info(f"Processing {len(targets)} Garoon events...")
    for batch in _batches(targets, max(1, batch_size)):
        results = await asyncio.gather(
            *(
                _sync_event(
                    event, stats, logger, destination, state_db, default_timezone, dry_run
                )
                for event in batch
            ),
            return_exceptions=True,
        )
        for event, result in zip(batch, results):
            if result is None:
                continue
            if isinstance(result, sqlite3.Error) or not isinstance(result, Exception):
                # The state store itself is broken: no further event can be recorded
                raise result
            logger.error(f"Failed to sync event {event.id}: {result}")
            stats.errors += 1
            if not dry_run:
                state_db.append_log(SyncAction.ERROR, event.id, None, str(result))
                state_db.commit()

    logger.info("Checking for deletions...")
    failed_deletes = await _delete_orphans(
        source_ids, stats, logger, destination, state_db, dry_run
    )

    if keep_days and not dry_run:
        state_db.prune_older_than(keep_days, keep=source_ids | failed_deletes)
        state_db.commit()

    logger.info(
        f"Sync finished: added={stats.added}, updated={stats.updated}, "
        f"deleted={stats.deleted}, errors={stats.errors}"
    )
    return stats
