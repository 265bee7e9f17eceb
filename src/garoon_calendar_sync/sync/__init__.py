"""
CalendarSynchronizer: thin orchestrator that wires clients into the engine.
"""

import asyncio
import logging
from datetime import date
from datetime import timedelta

from garoon_calendar_sync.db import StateDatabase
from garoon_calendar_sync.garoon_client import GaroonClient
from garoon_calendar_sync.garoon_client import validate_date_range
from garoon_calendar_sync.google_client import GoogleCalendarClient
from garoon_calendar_sync.google_client import ServiceAccountTokenProvider
from garoon_calendar_sync.models import SyncConfig
from garoon_calendar_sync.models import SyncStats
from garoon_calendar_sync.notification import TeamsNotifier
from garoon_calendar_sync.sync.engine import EventDestination
from garoon_calendar_sync.sync.engine import EventSource
from garoon_calendar_sync.sync.engine import run_sync


class CalendarSynchronizer:
    """Main synchronization entry point.

    Clients default to the real Garoon / Google / Teams adapters built from
    ``config``; tests pass in-memory replacements instead.
    """

    def __init__(
        self,
        config: SyncConfig,
        source: EventSource | None = None,
        destination: EventDestination | None = None,
        notifier: TeamsNotifier | None = None,
    ):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.source = source or GaroonClient(config.garoon, config.default_timezone)
        self.destination = destination or GoogleCalendarClient(
            config.google.calendar_id,
            ServiceAccountTokenProvider(config.google.credentials),
        )
        self.notifier = notifier or TeamsNotifier(config.teams.webhook_url)

    @staticmethod
    def default_range_for(days: int) -> tuple[str, str]:
        """Today through today + days, as YYYY-MM-DD strings."""
        today = date.today()
        return today.isoformat(), (today + timedelta(days=days)).isoformat()

    async def run(
        self,
        start_date: str | None = None,
        end_date: str | None = None,
        dry_run: bool = False,
    ) -> SyncStats:
        """Execute one synchronization pass and notify about its outcome.

        A malformed date range raises DateRangeError before the state
        database is opened and without a notification.
        """
        default_start, default_end = self.default_range_for(self.config.days)
        start_date = start_date or default_start
        end_date = end_date or default_end
        validate_date_range(start_date, end_date)

        try:
            with StateDatabase(self.config.state_db_path) as state_db:
                stats = await run_sync(
                    self.source,
                    self.destination,
                    state_db,
                    self.config.garoon.targets,
                    start_date,
                    end_date,
                    exclude_private=self.config.exclude_private,
                    batch_size=self.config.batch_size,
                    default_timezone=self.config.default_timezone,
                    keep_days=self.config.keep_days,
                    dry_run=dry_run,
                    logger=self.logger,
                )
        except Exception as e:
            self.logger.error(f"Sync aborted: {e}")
            await self.notifier.send_error("Garoon sync failed", e)
            raise

        if not dry_run and (stats.errors or not self.config.teams.notify_on_error):
            await self.notifier.send_sync_result(stats)
        return stats

    async def run_periodically(
        self, interval_minutes: int, iterations: int | None = None, sleep=asyncio.sleep
    ):
        """Run immediately, then every ``interval_minutes``.

        A failed run is logged (and already notified by run) and the loop
        carries on; ``iterations`` bounds the loop for tests.
        """
        count = 0
        while iterations is None or count < iterations:
            if count:
                await sleep(interval_minutes * 60)
            count += 1
            self.logger.info(f"Starting scheduled sync #{count}")
            try:
                await self.run()
            except Exception as e:
                self.logger.error(f"Scheduled sync failed, retrying in {interval_minutes} min: {e}")

    async def test_connections(self) -> dict[str, bool]:
        """Check both services; returns {"garoon": bool, "google": bool}."""
        return {
            "garoon": await self.source.test_connection(self.config.garoon.targets),
            "google": await self.destination.test_connection(),
        }

    async def aclose(self):
        for client in (self.source, self.destination, self.notifier):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
