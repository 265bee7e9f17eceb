"""
Shared pytest fixtures and Garoon event helpers.
"""

import logging
from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from garoon_calendar_sync.db import StateDatabase
from garoon_calendar_sync.models import AllDayTime
from garoon_calendar_sync.models import GaroonConfig
from garoon_calendar_sync.models import GoogleConfig
from garoon_calendar_sync.models import Scope
from garoon_calendar_sync.models import ScopeKind
from garoon_calendar_sync.models import SourceEvent
from garoon_calendar_sync.models import SyncConfig
from garoon_calendar_sync.models import TeamsConfig
from garoon_calendar_sync.models import TimedTime
from garoon_calendar_sync.models import Visibility

JST = timezone(timedelta(hours=9))
GAROON_URL = "https://example.cybozu.com/g"
SCOPES = [Scope(ScopeKind.INDIVIDUAL, "2")]


def make_source_event(
    event_id: str,
    title: str = "Test Event",
    updated_at: str = "2026-03-01T00:00:00Z",
    start: datetime | None = None,
    hours: int = 1,
    **kwargs,
) -> SourceEvent:
    """Return a one-hour timed Garoon event at 10:00 JST on 2026-03-01."""
    start = start or datetime(2026, 3, 1, 10, 0, tzinfo=JST)
    return SourceEvent(
        id=event_id,
        title=title,
        start=TimedTime(start, "Asia/Tokyo"),
        end=TimedTime(start + timedelta(hours=hours), "Asia/Tokyo"),
        updated_at=updated_at,
        **kwargs,
    )


def make_all_day_event(event_id: str, first: date, last: date, **kwargs) -> SourceEvent:
    """Return an all-day Garoon event covering first..last inclusive."""
    return SourceEvent(
        id=event_id,
        title=kwargs.pop("title", "Holiday"),
        start=AllDayTime(first),
        end=AllDayTime(last),
        updated_at=kwargs.pop("updated_at", "2026-03-01T00:00:00Z"),
        is_all_day=True,
        **kwargs,
    )


def make_private_event(event_id: str, **kwargs) -> SourceEvent:
    return make_source_event(event_id, visibility=Visibility.RESTRICTED, **kwargs)


def garoon_event_payload(event_id: str, subject: str = "Meeting", **overrides) -> dict:
    """Return a Garoon REST API event object."""
    payload = {
        "id": event_id,
        "subject": subject,
        "eventMenu": "",
        "notes": "",
        "start": {"dateTime": "2026-03-01T10:00:00+09:00", "timeZone": "Asia/Tokyo"},
        "end": {"dateTime": "2026-03-01T11:00:00+09:00", "timeZone": "Asia/Tokyo"},
        "isAllDay": False,
        "eventType": "REGULAR",
        "visibilityType": "PUBLIC",
        "attendees": [],
        "updatedAt": "2026-03-01T00:00:00Z",
        "createdAt": "2026-02-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_state.db"


@pytest.fixture
def state_db(db_path):
    with StateDatabase(db_path) as db:
        yield db


@pytest.fixture
def credentials_file(tmp_path):
    path = tmp_path / "service-account.json"
    path.write_text("{}")
    return path


@pytest.fixture
def sync_config(db_path, credentials_file):
    return SyncConfig(
        garoon=GaroonConfig(base_url=GAROON_URL, api_token="token", targets=list(SCOPES)),
        google=GoogleConfig(calendar_id="primary", credentials=credentials_file),
        teams=TeamsConfig(webhook_url=None, notify_on_error=True),
        state_db_path=db_path,
        keep_days=90,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")
