"""
Garoon → Google event translation.
"""

from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta

from garoon_calendar_sync.models import METADATA_SOURCE_ID
from garoon_calendar_sync.models import METADATA_SOURCE_UPDATED_AT
from garoon_calendar_sync.models import AllDayTime
from garoon_calendar_sync.models import AttendeeKind
from garoon_calendar_sync.models import DestinationEvent
from garoon_calendar_sync.models import EventTime
from garoon_calendar_sync.models import SourceEvent
from garoon_calendar_sync.models import TimedTime
from garoon_calendar_sync.models import Visibility

SYNC_FOOTER = "(Synced from Garoon)"

_MIDNIGHT = time(0, 0, 0)
_END_OF_DAY = time(23, 59, 59)


def _time_of_day(value: EventTime) -> time:
    if isinstance(value, AllDayTime):
        return _MIDNIGHT
    if isinstance(value, TimedTime):
        return value.at.time().replace(microsecond=0)
    raise TypeError(f"Unsupported event time: {value!r}")


def _calendar_date(value: EventTime) -> date:
    if isinstance(value, AllDayTime):
        return value.date
    if isinstance(value, TimedTime):
        # Date as written in the source's own offset, not converted to UTC
        return value.at.date()
    raise TypeError(f"Unsupported event time: {value!r}")


class EventTranslator:
    """Builds the Google Calendar copy of a Garoon event."""

    @staticmethod
    def is_all_day(event: SourceEvent) -> bool:
        """Decide whether the event should become a Google all-day event.

        Garoon marks all-day events either with isAllDay or with
        eventType=ALL_DAY, but some schedules are stored as a plain range
        from midnight to midnight (or to 23:59:59); those are treated as
        all-day as well.
        """
        if event.is_all_day or event.event_type == "ALL_DAY":
            return True
        return _time_of_day(event.start) == _MIDNIGHT and _time_of_day(event.end) in (
            _MIDNIGHT,
            _END_OF_DAY,
        )

    @staticmethod
    def build_description(event: SourceEvent) -> str:
        # Attendees are listed as text only: the service account cannot send
        # invitations without domain-wide delegation.
        parts = [event.notes] if event.notes else []
        names = [a.name for a in event.attendees if a.kind == AttendeeKind.INDIVIDUAL and a.name]
        if names:
            parts.append(f"Attendees: {', '.join(names)}")
        parts.append(SYNC_FOOTER)
        return "\n\n".join(parts)

    @staticmethod
    def build_title(event: SourceEvent) -> str:
        if event.category:
            return f"{event.category}: {event.title}"
        return event.title

    @classmethod
    def translate(cls, event: SourceEvent, default_timezone: str) -> DestinationEvent:
        """Return the DestinationEvent for ``event``.

        All-day events get an exclusive end date (source end date + 1 day),
        timed events keep their timestamps and carry an explicit zone.
        """
        start: EventTime
        end: EventTime
        if cls.is_all_day(event):
            start = AllDayTime(_calendar_date(event.start))
            end = AllDayTime(_calendar_date(event.end) + timedelta(days=1))
        else:
            start = cls._timed(event.start, default_timezone)
            end = cls._timed(event.end, default_timezone)

        return DestinationEvent(
            title=cls.build_title(event),
            description=cls.build_description(event),
            location=event.location or "",
            start=start,
            end=end,
            visibility="private" if event.visibility == Visibility.RESTRICTED else "default",
            metadata={
                METADATA_SOURCE_ID: event.id,
                METADATA_SOURCE_UPDATED_AT: event.updated_at,
            },
        )

    @staticmethod
    def _timed(value: EventTime, default_timezone: str) -> TimedTime:
        if isinstance(value, TimedTime):
            return TimedTime(at=value.at, timezone=value.timezone or default_timezone)
        if isinstance(value, AllDayTime):
            # Only reachable when one boundary is a bare date but the other is not
            return TimedTime(at=datetime.combine(value.date, _MIDNIGHT), timezone=default_timezone)
        raise TypeError(f"Unsupported event time: {value!r}")
