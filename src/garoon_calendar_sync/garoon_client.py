"""
Garoon schedule API wrapper (source side).
"""

import asyncio
import base64
import logging
import re
from datetime import date
from datetime import datetime
from datetime import time
from zoneinfo import ZoneInfo

import httpx

from garoon_calendar_sync.models import AllDayTime
from garoon_calendar_sync.models import ApiError
from garoon_calendar_sync.models import Attendee
from garoon_calendar_sync.models import AttendeeKind
from garoon_calendar_sync.models import DateRangeError
from garoon_calendar_sync.models import EventTime
from garoon_calendar_sync.models import GaroonConfig
from garoon_calendar_sync.models import Scope
from garoon_calendar_sync.models import SourceEvent
from garoon_calendar_sync.models import SourceFetchError
from garoon_calendar_sync.models import TimedTime
from garoon_calendar_sync.models import UnreadableSourceEvent
from garoon_calendar_sync.models import Visibility
from garoon_calendar_sync.retry import RetryOptions
from garoon_calendar_sync.retry import with_retry

logger = logging.getLogger(__name__)

EVENTS_ENDPOINT = "/api/v1/schedule/events"
EVENT_FIELDS = (
    "id,eventMenu,subject,notes,start,end,isAllDay,attendees,"
    "visibilityType,eventType,updatedAt,createdAt,location"
)

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")

_ATTENDEE_KINDS = {
    "USER": AttendeeKind.INDIVIDUAL,
    "ORGANIZATION": AttendeeKind.GROUP,
    "FACILITY": AttendeeKind.RESOURCE,
}


def validate_date_range(start_date: str, end_date: str) -> tuple[date, date]:
    """Check both dates are strict YYYY-MM-DD and ordered; return them parsed."""
    parsed = []
    for label, value in (("start", start_date), ("end", end_date)):
        if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
            raise DateRangeError(f"Invalid {label} date {value!r} (expected YYYY-MM-DD)")
        try:
            parsed.append(date.fromisoformat(value))
        except ValueError:
            raise DateRangeError(f"Invalid {label} date {value!r}: no such day") from None
    start, end = parsed
    if start > end:
        raise DateRangeError(f"Start date {start_date} is after end date {end_date}")
    return start, end


def _parse_time(payload: dict | None) -> EventTime:
    """Parse a Garoon ``{dateTime, timeZone}`` (or ``{date}``) boundary."""
    payload = payload or {}
    if payload.get("dateTime"):
        return TimedTime(
            at=datetime.fromisoformat(payload["dateTime"]),
            timezone=payload.get("timeZone") or None,
        )
    if payload.get("date"):
        return AllDayTime(date.fromisoformat(payload["date"]))
    raise ValueError(f"Event boundary has neither dateTime nor date: {payload!r}")


def parse_event(payload: dict) -> SourceEvent:
    """Convert one Garoon event JSON object into a SourceEvent."""
    is_all_day = bool(payload.get("isAllDay", False))
    attendees = tuple(
        Attendee(
            id=str(a.get("id", "")),
            name=a.get("name") or a.get("code") or "",
            kind=_ATTENDEE_KINDS.get(a.get("type", "USER"), AttendeeKind.INDIVIDUAL),
        )
        for a in payload.get("attendees") or []
    )
    visibility = (
        Visibility.RESTRICTED
        if (payload.get("visibilityType") or "").upper() == "PRIVATE"
        else Visibility.DEFAULT
    )
    return SourceEvent(
        id=str(payload["id"]),
        title=payload.get("subject") or "",
        category=payload.get("eventMenu") or None,
        start=_parse_time(payload.get("start")),
        end=_parse_time(payload.get("end") or payload.get("start")),
        is_all_day=is_all_day,
        event_type=payload.get("eventType") or "REGULAR",
        notes=payload.get("notes") or "",
        attendees=attendees,
        visibility=visibility,
        updated_at=payload.get("updatedAt") or "",
        created_at=payload.get("createdAt") or "",
        location=payload.get("location") or None,
    )


class GaroonClient:
    """Async wrapper for the Garoon REST schedule API."""

    def __init__(
        self,
        config: GaroonConfig,
        default_timezone: str = "Asia/Tokyo",
        http_client: httpx.AsyncClient | None = None,
        retry_options: RetryOptions | None = None,
    ):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.zone = ZoneInfo(default_timezone)
        self.retry_options = retry_options
        self.client = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=config.timeout
        )
        self.client.headers.update(self._auth_headers())

    def _auth_headers(self) -> dict[str, str]:
        if self.config.username and self.config.password:
            token = base64.b64encode(
                f"{self.config.username}:{self.config.password}".encode()
            ).decode()
            return {"X-Cybozu-Authorization": token}
        if self.config.api_token:
            return {"X-Cybozu-API-Token": self.config.api_token}
        return {}

    async def aclose(self):
        await self.client.aclose()

    async def _get(self, path: str, params: dict | None = None) -> dict:
        async def _request() -> dict:
            response = await self.client.get(path, params=params)
            if response.is_error:
                raise ApiError("garoon", response.status_code, response.text)
            return response.json()

        return await with_retry(_request, self.retry_options)

    def _parse_page(self, scope: Scope, items: list) -> list[SourceEvent | UnreadableSourceEvent]:
        parsed: list[SourceEvent | UnreadableSourceEvent] = []
        for item in items:
            try:
                parsed.append(parse_event(item))
            except (KeyError, TypeError, ValueError) as e:
                event_id = item.get("id") if isinstance(item, dict) else None
                if event_id is None:
                    logger.warning(f"Skipping Garoon event without an ID in scope {scope}: {e!r}")
                    continue
                logger.warning(f"Cannot parse Garoon event {event_id} in scope {scope}: {e!r}")
                parsed.append(UnreadableSourceEvent(str(event_id), repr(e)))
        return parsed

    def _range_params(self, start: date, end: date) -> dict[str, str]:
        range_start = datetime.combine(start, time(0, 0, 0), tzinfo=self.zone)
        range_end = datetime.combine(end, time(23, 59, 59), tzinfo=self.zone)
        return {
            "rangeStart": range_start.isoformat(),
            "rangeEnd": range_end.isoformat(),
        }

    async def _fetch_scope(
        self, scope: Scope, start: date, end: date
    ) -> list[SourceEvent | UnreadableSourceEvent]:
        """Follow nextEventId pagination for one scope until hasNext is false."""
        params = {
            **self._range_params(start, end),
            "target": scope.id,
            "targetType": scope.kind.value,
            "fields": EVENT_FIELDS,
        }
        events: list[SourceEvent | UnreadableSourceEvent] = []
        next_event_id: str | None = None
        page = 0
        while True:
            request_params = dict(params)
            if next_event_id:
                request_params["nextEventId"] = next_event_id
            data = await self._get(EVENTS_ENDPOINT, request_params)
            page += 1
            events.extend(self._parse_page(scope, data.get("events") or []))
            if not data.get("hasNext"):
                break
            next_event_id = data.get("nextEventId")
            if not next_event_id:
                raise SourceFetchError(
                    f"Garoon reported more events for {scope} without a nextEventId"
                )
        logger.debug(f"Scope {scope}: {len(events)} event(s) in {page} page(s)")
        return events

    async def fetch_events(
        self, scopes: list[Scope], start_date: str, end_date: str
    ) -> list[SourceEvent | UnreadableSourceEvent]:
        """Fetch and merge events for all scopes in [start_date, end_date].

        Scopes are fetched concurrently.  Results are merged by event ID in
        the order the scopes were given, so when two scopes see the same
        event the later scope's copy wins, unless that copy is unreadable.
        A failing scope is logged and skipped; SourceFetchError is raised
        only when every scope fails.
        """
        start, end = validate_date_range(start_date, end_date)
        if not scopes:
            raise SourceFetchError("No Garoon scopes configured")

        results = await asyncio.gather(
            *(self._fetch_scope(scope, start, end) for scope in scopes),
            return_exceptions=True,
        )

        merged: dict[str, SourceEvent | UnreadableSourceEvent] = {}
        failed = 0
        for scope, result in zip(scopes, results):
            if isinstance(result, Exception):
                failed += 1
                logger.warning(f"Failed to fetch Garoon scope {scope}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            for event in result:
                if isinstance(event, UnreadableSourceEvent) and event.id in merged:
                    continue
                merged[event.id] = event

        if failed == len(scopes):
            raise SourceFetchError(f"All {failed} Garoon scope(s) failed to fetch")

        logger.info(
            f"Fetched {len(merged)} Garoon event(s) from {len(scopes) - failed} scope(s)"
        )
        return list(merged.values())

    async def get_event(self, event_id: str) -> SourceEvent | None:
        """Retrieve a single event by ID, or None when Garoon reports 404."""
        try:
            data = await self._get(f"{EVENTS_ENDPOINT}/{event_id}")
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise
        return parse_event(data)

    async def test_connection(self, scopes: list[Scope]) -> bool:
        """Run a one-day query for the first scope; True on success."""
        if not scopes:
            return False
        today = date.today()
        try:
            await self._get(
                EVENTS_ENDPOINT,
                {
                    **self._range_params(today, today),
                    "target": scopes[0].id,
                    "targetType": scopes[0].kind.value,
                    "fields": "id",
                    "limit": 1,
                },
            )
        except (ApiError, httpx.HTTPError) as e:
            logger.error(f"Garoon connection test failed: {e}")
            return False
        return True
