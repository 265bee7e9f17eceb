"""
Tests for CalendarSynchronizer: date defaults, notification policy and the
periodic loop, with in-memory clients.
"""

import asyncio
from datetime import date
from datetime import timedelta

import pytest

from garoon_calendar_sync.models import ApiError
from garoon_calendar_sync.models import DateRangeError
from garoon_calendar_sync.models import SourceFetchError
from garoon_calendar_sync.sync import CalendarSynchronizer
from tests.conftest import make_source_event
from tests.fake_client import FakeDestinationClient
from tests.fake_client import FakeNotifier
from tests.fake_client import FakeSourceClient


def _synchronizer(sync_config, events=(), error=None):
    source = FakeSourceClient(list(events), error=error)
    destination = FakeDestinationClient()
    notifier = FakeNotifier()
    synchronizer = CalendarSynchronizer(sync_config, source, destination, notifier)
    return synchronizer, source, destination, notifier


def test_default_range_spans_configured_days(sync_config):
    synchronizer, source, _, _ = _synchronizer(sync_config)
    sync_config.days = 7

    asyncio.run(synchronizer.run())

    today = date.today()
    _, start, end = source.fetches[0]
    assert start == today.isoformat()
    assert end == (today + timedelta(days=7)).isoformat()


def test_explicit_range_is_passed_through(sync_config):
    synchronizer, source, _, _ = _synchronizer(sync_config)

    asyncio.run(synchronizer.run("2026-04-01", "2026-04-30"))

    assert source.fetches[0][1:] == ("2026-04-01", "2026-04-30")


@pytest.mark.parametrize(
    "start,end", [("2026/03/01", None), ("2026-04-30", "2026-04-01"), ("2026-02-30", None)]
)
def test_malformed_range_fails_before_state_or_notification(sync_config, start, end):
    synchronizer, source, _, notifier = _synchronizer(sync_config)

    with pytest.raises(DateRangeError):
        asyncio.run(synchronizer.run(start, end))

    assert source.fetches == []
    assert notifier.errors == []
    assert not sync_config.state_db_path.exists()


def test_clean_run_is_silent_when_notifying_on_error_only(sync_config):
    synchronizer, _, _, notifier = _synchronizer(sync_config, [make_source_event("G1")])

    stats = asyncio.run(synchronizer.run())

    assert stats.added == 1
    assert notifier.results == []
    assert notifier.errors == []


def test_run_with_errors_is_notified(sync_config):
    synchronizer, _, destination, notifier = _synchronizer(
        sync_config, [make_source_event("G1")]
    )
    destination.fail_on["G1"] = ApiError("google", 400)

    stats = asyncio.run(synchronizer.run())

    assert stats.errors == 1
    assert notifier.results == [stats]


def test_every_run_is_notified_when_not_error_only(sync_config):
    sync_config.teams.notify_on_error = False
    synchronizer, _, _, notifier = _synchronizer(sync_config)

    asyncio.run(synchronizer.run())

    assert len(notifier.results) == 1


def test_aborted_run_notifies_and_reraises(sync_config):
    synchronizer, _, _, notifier = _synchronizer(
        sync_config, error=SourceFetchError("All 1 Garoon scope(s) failed to fetch")
    )

    with pytest.raises(SourceFetchError):
        asyncio.run(synchronizer.run())

    assert len(notifier.errors) == 1
    assert isinstance(notifier.errors[0][1], SourceFetchError)


def test_periodic_loop_survives_failed_runs(sync_config):
    synchronizer, source, _, notifier = _synchronizer(
        sync_config, error=SourceFetchError("down")
    )
    sleeps = []

    async def _sleep(seconds):
        sleeps.append(seconds)
        # source recovers after the first failure
        source.error = None

    asyncio.run(synchronizer.run_periodically(15, iterations=3, sleep=_sleep))

    assert len(source.fetches) == 3
    assert sleeps == [900, 900]
    assert len(notifier.errors) == 1


def test_connections(sync_config):
    synchronizer, source, destination, _ = _synchronizer(sync_config)
    destination.connected = False

    assert asyncio.run(synchronizer.test_connections()) == {"garoon": True, "google": False}
