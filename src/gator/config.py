"""Runtime configuration for the aggregator and its ingestion loop."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

from gator import __version__

DEFAULT_USER_AGENT = f"gator/{__version__}"
DEFAULT_SESSION_FILENAME = ".gatorconfig.json"

_DURATION_UNITS_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # noqa: RUF001
    "μs": 1e-6,  # noqa: RUF001
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"  # noqa: RUF001
_DURATION_RE = re.compile(rf"([+-]?)((?:{_DURATION_PART})+)")
_DURATION_PART_RE = re.compile(_DURATION_PART)
# Largest duration Go accepts: 2**63 - 1 nanoseconds, about 292 years.
MAX_DURATION_SECONDS = (2**63 - 1) / 1e9


class ConfigError(ValueError):
    """Invalid configuration; fatal at startup."""


@dataclass(slots=True)
class FetchSettings:
    """Feed fetch settings."""

    request_timeout_seconds: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    followed_only: bool = False


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".gator.db")
    session_path: Path = field(default_factory=lambda: Path.home() / DEFAULT_SESSION_FILENAME)
    poll_interval: str | None = None
    log_level: str = "INFO"
    sqlite_busy_timeout_ms: int = 5_000
    fetch: FetchSettings = field(default_factory=FetchSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        session_path = os.getenv("GATOR_SESSION_PATH", "").strip()
        return cls(
            db_path=db_path or Path(os.getenv("GATOR_DB_PATH", ".gator.db")),
            session_path=(
                Path(session_path) if session_path else Path.home() / DEFAULT_SESSION_FILENAME
            ),
            poll_interval=os.getenv("GATOR_POLL_INTERVAL", "").strip() or None,
            log_level=_env_log_level("GATOR_LOG_LEVEL", "INFO"),
            sqlite_busy_timeout_ms=_env_positive_int("GATOR_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            fetch=FetchSettings(
                request_timeout_seconds=_env_float("GATOR_REQUEST_TIMEOUT_SECONDS", 30.0),
                user_agent=os.getenv("GATOR_USER_AGENT", DEFAULT_USER_AGENT).strip()
                or DEFAULT_USER_AGENT,
                followed_only=_env_bool("GATOR_FETCH_FOLLOWED_ONLY", default=False),
            ),
        )

    def resolve_poll_interval(self, override: str | None = None) -> timedelta:
        """Return the validated poll interval; the CLI argument wins over the environment."""

        raw = override if override is not None else self.poll_interval
        if raw is None or not raw.strip():
            raise ConfigError(
                "A poll interval is required. Pass it to `gator agg` or set GATOR_POLL_INTERVAL.",
            )
        return require_positive_interval(parse_duration(raw))

    def validate_for_fetch(self) -> None:
        """Raise configuration error if fetch settings cannot work."""

        if self.fetch.request_timeout_seconds <= 0:
            raise ConfigError("GATOR_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if not self.fetch.user_agent:
            raise ConfigError("GATOR_USER_AGENT must not be empty.")


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``1m``, ``30s``, ``1h30m`` or ``1.5s``."""

    text = value.strip()
    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise ConfigError(
            f"Invalid duration: {value!r}. Expected a number with a unit, e.g. '30s', '1m', '1h'.",
        )
    sign, body = match.group(1), match.group(2)
    seconds = sum(
        float(number) * _DURATION_UNITS_SECONDS[unit]
        for number, unit in _DURATION_PART_RE.findall(body)
    )
    if seconds > MAX_DURATION_SECONDS:
        raise ConfigError(
            f"Invalid duration: {value!r}. It exceeds the maximum of about 292 years.",
        )
    if sign == "-":
        seconds = -seconds
    try:
        return timedelta(seconds=seconds)
    except OverflowError as error:
        raise ConfigError(f"Invalid duration: {value!r}. It is out of range.") from error


def require_positive_interval(interval: timedelta) -> timedelta:
    if interval <= timedelta(0):
        raise ConfigError(f"Poll interval must be positive, got {interval}.")
    return interval


def validate_feed_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigError(
            "Invalid feed URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def read_current_user(path: Path) -> str | None:
    """Return the logged-in user name recorded in the session file, if any."""

    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise ConfigError(f"Session file is not valid JSON: {path}") from error
    if not isinstance(payload, dict):
        raise ConfigError(f"Session file must hold a JSON object: {path}")
    name = payload.get("current_user_name")
    if not isinstance(name, str) or not name.strip():
        return None
    return name


def write_current_user(path: Path, name: str) -> None:
    """Record ``name`` as the current user, keeping other keys in the session file."""

    payload: dict[str, object] = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            loaded = {}
        if isinstance(loaded, dict):
            payload = loaded
    payload["current_user_name"] = name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ConfigError(f"Invalid number for {name}: {value!r}") from error


def _env_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError as error:
        raise ConfigError(f"Invalid integer for {name}: {value!r}") from error
    if parsed <= 0:
        raise ConfigError(f"{name} must be > 0, got {parsed}.")
    return parsed


def _env_log_level(name: str, default: str) -> str:
    value = os.getenv(name, "").strip().upper() or default
    if value not in logging.getLevelNamesMapping():
        raise ConfigError(f"Invalid log level for {name}: {value!r}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {value!r}")
