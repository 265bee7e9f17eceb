"""
INI configuration loading and validation.
"""

import os
from collections.abc import Mapping
from configparser import ConfigParser
from pathlib import Path
from urllib.parse import urlparse
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from garoon_calendar_sync.models import DEFAULT_STATE_DB
from garoon_calendar_sync.models import ConfigError
from garoon_calendar_sync.models import GaroonConfig
from garoon_calendar_sync.models import GoogleConfig
from garoon_calendar_sync.models import Scope
from garoon_calendar_sync.models import SyncConfig
from garoon_calendar_sync.models import TeamsConfig

# environment variable → (section, key)
ENV_OVERRIDES = {
    "GAROON_API_TOKEN": ("garoon", "api_token"),
    "GAROON_USERNAME": ("garoon", "username"),
    "GAROON_PASSWORD": ("garoon", "password"),
    "GOOGLE_CALENDAR_ID": ("google", "calendar_id"),
    "TEAMS_WEBHOOK_URL": ("teams", "webhook_url"),
}

SECTIONS = ("garoon", "google", "sync", "teams", "database")


def _read_parser(config_path: Path, environ: Mapping[str, str]) -> ConfigParser:
    # Passwords may contain "%"
    parser = ConfigParser(interpolation=None)
    if config_path.exists():
        parser.read(config_path)
    for section in SECTIONS:
        if section not in parser:
            parser.add_section(section)
    for variable, (section, key) in ENV_OVERRIDES.items():
        if environ.get(variable):
            parser[section][key] = environ[variable]
    return parser


def _resolve_path(value: str, base: Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def _get_int(parser: ConfigParser, section: str, key: str, default: int) -> int:
    try:
        return parser.getint(section, key, fallback=default)
    except ValueError:
        raise ConfigError(f"[{section}] {key} must be an integer") from None


def _get_float(parser: ConfigParser, section: str, key: str, default: float) -> float:
    try:
        return parser.getfloat(section, key, fallback=default)
    except ValueError:
        raise ConfigError(f"[{section}] {key} must be a number") from None


def _get_bool(parser: ConfigParser, section: str, key: str, default: bool) -> bool:
    try:
        return parser.getboolean(section, key, fallback=default)
    except ValueError:
        raise ConfigError(f"[{section}] {key} must be true or false") from None


def load_config(
    config_path: Path,
    state_db_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> SyncConfig:
    """Build a SyncConfig from the INI file plus environment overrides.

    A missing file is not an error here; the resulting config simply fails
    validate_config.  Relative paths are resolved against the directory the
    config file lives in.
    """
    environ = os.environ if environ is None else environ
    parser = _read_parser(config_path, environ)
    base = config_path.parent

    garoon = parser["garoon"]
    targets = [Scope.parse(t) for t in garoon.get("targets", "user:2").split(",") if t.strip()]
    garoon_config = GaroonConfig(
        base_url=garoon.get("base_url", "").strip(),
        api_token=garoon.get("api_token") or None,
        username=garoon.get("username") or None,
        password=garoon.get("password") or None,
        targets=targets,
        timeout=_get_float(parser, "garoon", "timeout", 10.0),
    )

    google = parser["google"]
    credentials = google.get("credentials")
    google_config = GoogleConfig(
        calendar_id=google.get("calendar_id", "primary").strip(),
        credentials=_resolve_path(credentials, base) if credentials else None,
    )

    teams_config = TeamsConfig(
        webhook_url=parser["teams"].get("webhook_url") or None,
        notify_on_error=_get_bool(parser, "teams", "notify_on_error", True),
    )

    if state_db_path is None:
        db_value = parser["database"].get("path")
        state_db_path = _resolve_path(db_value, base) if db_value else DEFAULT_STATE_DB

    sync = parser["sync"]
    return SyncConfig(
        garoon=garoon_config,
        google=google_config,
        teams=teams_config,
        state_db_path=state_db_path,
        days=_get_int(parser, "sync", "days", 30),
        exclude_private=_get_bool(parser, "sync", "exclude_private", True),
        interval_minutes=_get_int(parser, "sync", "interval_minutes", 15),
        default_timezone=sync.get("default_timezone", "Asia/Tokyo").strip(),
        batch_size=_get_int(parser, "sync", "batch_size", 5),
        keep_days=_get_int(parser, "sync", "keep_days", 90),
    )


def validate_config(config: SyncConfig):
    """Raise ConfigError describing the first problem found."""
    base_url = config.garoon.base_url
    if not base_url:
        raise ConfigError("Garoon base_url is not set")
    parsed = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Garoon base_url must be an absolute http(s) URL: {base_url}")

    if not config.garoon.api_token and not (config.garoon.username and config.garoon.password):
        raise ConfigError("Garoon api_token or username and password must be set")

    if not config.garoon.targets:
        raise ConfigError("At least one Garoon target is required")

    if not config.google.calendar_id:
        raise ConfigError("Google calendar_id is not set")

    if config.google.credentials is None:
        raise ConfigError("Google credentials path is not set")
    if not config.google.credentials.exists():
        raise ConfigError(f"Google credentials file not found: {config.google.credentials}")

    if config.days <= 0:
        raise ConfigError("[sync] days must be positive")
    if config.batch_size <= 0:
        raise ConfigError("[sync] batch_size must be positive")
    if config.interval_minutes <= 0:
        raise ConfigError("[sync] interval_minutes must be positive")

    try:
        ZoneInfo(config.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"Unknown default_timezone: {config.default_timezone}") from None
