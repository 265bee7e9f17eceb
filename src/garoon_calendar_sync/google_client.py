"""
Google Calendar API wrapper (destination side).
"""

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path
from urllib.parse import quote

import google.auth.exceptions
import google.auth.transport.requests
import httpx
from google.oauth2 import service_account

from garoon_calendar_sync.models import AllDayTime
from garoon_calendar_sync.models import ApiError
from garoon_calendar_sync.models import CalendarInfo
from garoon_calendar_sync.models import CalendarSyncError
from garoon_calendar_sync.models import DestinationEvent
from garoon_calendar_sync.models import EventTime
from garoon_calendar_sync.models import TimedTime
from garoon_calendar_sync.retry import RetryOptions
from garoon_calendar_sync.retry import with_retry

logger = logging.getLogger(__name__)

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
CALENDAR_LIST_URL = f"{CALENDAR_API_BASE}/users/me/calendarList"

TokenProvider = Callable[[], Awaitable[str]]


class ServiceAccountTokenProvider:
    """Supplies bearer tokens from a service-account key file.

    google-auth refreshes synchronously, so the refresh runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, credentials_path: Path | None):
        if credentials_path is None or not credentials_path.exists():
            raise CalendarSyncError(f"Google credentials file not found: {credentials_path}")
        self.credentials = service_account.Credentials.from_service_account_file(
            str(credentials_path), scopes=[CALENDAR_SCOPE]
        )

    async def __call__(self) -> str:
        if not self.credentials.valid:
            request = google.auth.transport.requests.Request()
            await asyncio.to_thread(self.credentials.refresh, request)
        return self.credentials.token


# ---------------------------------------------------------------------------
# Payload conversion
# ---------------------------------------------------------------------------


def time_to_payload(value: EventTime) -> dict[str, str]:
    if isinstance(value, AllDayTime):
        return {"date": value.date.isoformat()}
    if isinstance(value, TimedTime):
        payload = {"dateTime": value.at.isoformat()}
        if value.timezone:
            payload["timeZone"] = value.timezone
        return payload
    raise TypeError(f"Unsupported event time: {value!r}")


def time_from_payload(payload: dict | None) -> EventTime:
    payload = payload or {}
    if payload.get("date"):
        return AllDayTime(date.fromisoformat(payload["date"]))
    return TimedTime(
        at=datetime.fromisoformat(payload.get("dateTime", "")),
        timezone=payload.get("timeZone") or None,
    )


def event_to_payload(event: DestinationEvent) -> dict:
    body = {
        "summary": event.title,
        "description": event.description,
        "location": event.location,
        "visibility": event.visibility,
        "start": time_to_payload(event.start),
        "end": time_to_payload(event.end),
    }
    if event.metadata:
        body["extendedProperties"] = {"private": dict(event.metadata)}
    return body


def event_from_payload(item: dict) -> DestinationEvent:
    return DestinationEvent(
        id=item.get("id"),
        title=item.get("summary") or "",
        description=item.get("description") or "",
        location=item.get("location") or "",
        visibility=item.get("visibility") or "default",
        start=time_from_payload(item.get("start")),
        end=time_from_payload(item.get("end")),
        metadata=dict((item.get("extendedProperties") or {}).get("private") or {}),
        status=item.get("status"),
    )


def calendar_from_payload(item: dict) -> CalendarInfo:
    return CalendarInfo(
        id=item.get("id") or "",
        summary=item.get("summaryOverride") or item.get("summary") or "",
        access_role=item.get("accessRole") or "",
        description=item.get("description") or "",
        primary=bool(item.get("primary", False)),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GoogleCalendarClient:
    """Idempotent single-event operations on one Google calendar."""

    def __init__(
        self,
        calendar_id: str,
        token_provider: TokenProvider,
        http_client: httpx.AsyncClient | None = None,
        retry_options: RetryOptions | None = None,
    ):
        self.calendar_id = calendar_id
        self.token_provider = token_provider
        self.retry_options = retry_options
        self.client = http_client or httpx.AsyncClient(timeout=30.0)
        self.events_url = f"{CALENDAR_API_BASE}/calendars/{quote(calendar_id, safe='')}/events"

    async def aclose(self):
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Single attempt; error statuses become ApiError for the retry classifier."""
        token = await self.token_provider()
        response = await self.client.request(
            method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
        )
        if response.is_error:
            raise ApiError("google", response.status_code, response.text)
        return response

    async def _call(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await with_retry(
            lambda: self._request(method, url, **kwargs), self.retry_options
        )

    async def create(self, event: DestinationEvent) -> str:
        """Insert an event and return the ID Google assigned to it."""
        response = await self._call(
            "POST",
            self.events_url,
            params={"sendUpdates": "none"},
            json=event_to_payload(event),
        )
        event_id = response.json().get("id")
        if not event_id:
            raise CalendarSyncError("Google Calendar did not return an event ID")
        return event_id

    async def update(self, event_id: str, event: DestinationEvent):
        """Replace the event stored under event_id."""
        await self._call(
            "PUT",
            f"{self.events_url}/{quote(event_id, safe='')}",
            params={"sendUpdates": "none"},
            json=event_to_payload(event),
        )

    async def delete(self, event_id: str) -> bool:
        """Delete an event; False when it was already gone (not an error)."""
        try:
            await self._call(
                "DELETE",
                f"{self.events_url}/{quote(event_id, safe='')}",
                params={"sendUpdates": "none"},
            )
        except ApiError as e:
            if e.is_not_found:
                logger.debug(f"Event {event_id} already absent from Google Calendar")
                return False
            raise
        return True

    async def get(self, event_id: str) -> DestinationEvent | None:
        """Fetch one event, or None if it no longer exists."""
        try:
            response = await self._call("GET", f"{self.events_url}/{quote(event_id, safe='')}")
        except ApiError as e:
            if e.is_not_found:
                return None
            raise
        event = event_from_payload(response.json())
        # Deleted events can still be readable with status=cancelled
        if event.status == "cancelled":
            return None
        return event

    async def test_connection(self) -> bool:
        """List at most one upcoming event; True on success."""
        now = datetime.now(timezone.utc)
        try:
            await self._request(
                "GET",
                self.events_url,
                params={
                    "timeMin": now.isoformat(),
                    "timeMax": (now + timedelta(hours=1)).isoformat(),
                    "maxResults": 1,
                },
            )
        except (
            CalendarSyncError,
            httpx.HTTPError,
            google.auth.exceptions.GoogleAuthError,
        ) as e:
            logger.error(f"Google Calendar connection test failed: {e}")
            return False
        return True

    async def list_calendars(self) -> list[CalendarInfo]:
        """Every calendar on the service account's calendar list, across pages."""
        calendars: list[CalendarInfo] = []
        page_token: str | None = None
        while True:
            params = {"pageToken": page_token} if page_token else {}
            data = (await self._call("GET", CALENDAR_LIST_URL, params=params)).json()
            calendars.extend(calendar_from_payload(item) for item in data.get("items") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                return calendars
