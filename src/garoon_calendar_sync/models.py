"""
Pure data models: no HTTP or sqlite imports.
"""

import enum
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from pathlib import Path

DEFAULT_STATE_DB = Path.home() / ".local/share/garoon-calendar-sync-state.db"
DEFAULT_CONFIG = Path.home() / ".config/garoon-calendar-sync.conf"

METADATA_SOURCE_ID = "sourceEventId"
METADATA_SOURCE_UPDATED_AT = "sourceUpdatedAt"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class ConfigError(CalendarSyncError):
    """Configuration is missing or invalid."""


class DateRangeError(CalendarSyncError):
    """A sync date range argument is malformed."""


class SourceFetchError(CalendarSyncError):
    """No source scope could be fetched."""


class ApiError(CalendarSyncError):
    """An HTTP API answered with an error status."""

    def __init__(self, service: str, status_code: int, body: str = ""):
        self.service = service
        self.status_code = status_code
        self.body = body
        super().__init__(f"{service} API error: {status_code} {body}".rstrip())

    @property
    def is_not_found(self) -> bool:
        # Google answers 410 Gone for events that were already deleted
        return self.status_code in (404, 410)


# ---------------------------------------------------------------------------
# Source side
# ---------------------------------------------------------------------------


class ScopeKind(enum.Enum):
    INDIVIDUAL = "user"
    GROUP = "organization"


@dataclass(frozen=True)
class Scope:
    """A Garoon user or organization whose schedule is queried."""

    kind: ScopeKind
    id: str

    @classmethod
    def parse(cls, value: str) -> "Scope":
        """Parse ``user:<id>`` / ``organization:<id>``; a bare id means a user."""
        kind_str, sep, scope_id = value.strip().partition(":")
        if not sep:
            kind_str, scope_id = "user", kind_str
        try:
            kind = ScopeKind(kind_str.strip().lower())
        except ValueError:
            raise ConfigError(
                f"Unknown scope kind in {value!r} (use user: or organization:)"
            ) from None
        if not scope_id.strip():
            raise ConfigError(f"Missing scope id in {value!r}")
        return cls(kind, scope_id.strip())

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class AttendeeKind(enum.Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"
    RESOURCE = "resource"


class Visibility(enum.Enum):
    DEFAULT = "default"
    RESTRICTED = "restricted"


@dataclass(frozen=True)
class AllDayTime:
    """Event boundary expressed as a calendar date."""

    date: date


@dataclass(frozen=True)
class TimedTime:
    """Event boundary expressed as a timestamp, optionally with an IANA zone."""

    at: datetime
    timezone: str | None = None


EventTime = AllDayTime | TimedTime


@dataclass(frozen=True)
class Attendee:
    id: str
    name: str
    kind: AttendeeKind


@dataclass(frozen=True)
class SourceEvent:
    """Snapshot of one Garoon event as fetched in the current run."""

    id: str
    title: str
    start: EventTime
    end: EventTime
    updated_at: str
    created_at: str = ""
    category: str | None = None
    is_all_day: bool = False
    event_type: str = "REGULAR"
    notes: str = ""
    attendees: tuple[Attendee, ...] = ()
    visibility: Visibility = Visibility.DEFAULT
    location: str | None = None


@dataclass(frozen=True)
class UnreadableSourceEvent:
    """A fetched Garoon event whose payload could not be parsed.

    Its ID still counts as present, so the Google copy is not deleted.
    """

    id: str
    reason: str


# ---------------------------------------------------------------------------
# Destination side
# ---------------------------------------------------------------------------


@dataclass
class DestinationEvent:
    """A Google Calendar event in the shape this tool reads and writes."""

    title: str
    start: EventTime
    end: EventTime
    description: str = ""
    location: str = ""
    visibility: str = "default"  # 'default' or 'private'
    metadata: dict[str, str] = field(default_factory=dict)
    id: str | None = None
    status: str | None = None

    @property
    def source_event_id(self) -> str | None:
        return self.metadata.get(METADATA_SOURCE_ID)


@dataclass
class CalendarInfo:
    """One entry of the service account's calendar list."""

    id: str
    summary: str
    access_role: str = ""
    description: str = ""
    primary: bool = False


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


class SyncAction(enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNCHANGED = "UNCHANGED"
    ERROR = "ERROR"


@dataclass
class SyncRecord:
    """Mapping between one Garoon event and the Google event created for it."""

    source_event_id: str
    destination_event_id: str
    last_synced_at: str
    source_updated_at: str


@dataclass
class LogEntry:
    id: int
    timestamp: str
    action: str
    source_event_id: str | None = None
    destination_event_id: str | None = None
    detail: str | None = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class GaroonConfig:
    base_url: str
    api_token: str | None = None
    username: str | None = None
    password: str | None = None
    targets: list[Scope] = field(default_factory=lambda: [Scope(ScopeKind.INDIVIDUAL, "2")])
    timeout: float = 10.0


@dataclass
class GoogleConfig:
    calendar_id: str = "primary"
    credentials: Path | None = None


@dataclass
class TeamsConfig:
    webhook_url: str | None = None
    notify_on_error: bool = True


@dataclass
class SyncConfig:
    """Configuration for calendar sync operation."""

    garoon: GaroonConfig
    google: GoogleConfig
    state_db_path: Path
    teams: TeamsConfig = field(default_factory=TeamsConfig)
    days: int = 30
    exclude_private: bool = True
    interval_minutes: int = 15
    default_timezone: str = "Asia/Tokyo"
    batch_size: int = 5
    keep_days: int = 90
    verbose: bool = False


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.added + self.updated + self.deleted
