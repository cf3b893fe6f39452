"""Configuration for the attendance dashboard.

Values come from ``THERMODASH_*`` environment variables (see ``.env.example``)
and fall back to the defaults below.

Example:
    >>> from thermodash.config import DashboardConfig
    >>> config = DashboardConfig.from_env()
    >>> config.backend_url
    'http://192.168.75.104:8000'
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from thermodash.dashboard.database import DEFAULT_MAX_EVENTS
from thermodash.dashboard.models import Settings

ENV_PREFIX = "THERMODASH_"
DEFAULT_BACKEND_URL = "http://192.168.75.104:8000"
DEFAULT_EVENTS_DB = Path.home() / ".thermodash" / "events.db"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class DashboardConfig:
    """Dashboard configuration.

    Attributes:
        backend_url: Root URL of the camera backend
        live_interval: Seconds between live polls while monitoring
        records_interval: Seconds between attendance record refreshes
        capture_delay: Seconds between a face detection and its auto-capture
        request_timeout: Per-request timeout in seconds
        display_limit: Number of most recent records shown
        events_db: Path of the SQLite event log
        events_retention: Number of most recent events kept in the log
        settings: Initial user settings
    """
    backend_url: str = DEFAULT_BACKEND_URL
    live_interval: float = 1.0
    records_interval: float = 30.0
    capture_delay: float = 1.0
    request_timeout: float = 5.0
    display_limit: int = 10
    events_db: str | Path = DEFAULT_EVENTS_DB
    events_retention: int = DEFAULT_MAX_EVENTS
    settings: Settings = field(default_factory=Settings)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DashboardConfig:
        """Build a configuration from environment variables.

        Args:
            environ: Mapping to read from, defaults to ``os.environ``

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        settings = defaults.settings

        try:
            settings = Settings(
                auto_capture=_env_bool(env, "AUTO_CAPTURE", settings.auto_capture),
                temp_threshold=_env_float(env, "TEMP_THRESHOLD", settings.temp_threshold),
                capture_interval=_env_int(env, "CAPTURE_INTERVAL", settings.capture_interval),
            )
        except ValueError as e:
            raise ValueError(f"Invalid dashboard settings in environment: {e}") from e

        return cls(
            backend_url=env.get(ENV_PREFIX + "BACKEND_URL", defaults.backend_url),
            live_interval=_env_float(env, "LIVE_INTERVAL", defaults.live_interval),
            records_interval=_env_float(env, "RECORDS_INTERVAL", defaults.records_interval),
            capture_delay=_env_float(env, "CAPTURE_DELAY", defaults.capture_delay, minimum=0.0),
            request_timeout=_env_float(env, "REQUEST_TIMEOUT", defaults.request_timeout),
            display_limit=_env_int(env, "DISPLAY_LIMIT", defaults.display_limit),
            events_db=_env_path(env, "EVENTS_DB", defaults.events_db),
            events_retention=_env_int(env, "EVENTS_RETENTION", defaults.events_retention),
            settings=settings,
        )


def _env_float(
    env: Mapping[str, str], name: str, default: float, minimum: float | None = None
) -> float:
    """Read a float variable; by default it must be strictly positive."""
    raw = env.get(ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from None
    too_small = value < minimum if minimum is not None else value <= 0
    if not math.isfinite(value) or too_small:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}")
    return value


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from None
    if value <= 0:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}")
    return value


def _env_path(env: Mapping[str, str], name: str, default: str | Path) -> str | Path:
    raw = env.get(ENV_PREFIX + name)
    if raw is None:
        return default
    if raw == ":memory:":
        return raw
    return Path(raw).expanduser()


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}")


__all__ = ["DashboardConfig", "DEFAULT_BACKEND_URL", "ENV_PREFIX"]
