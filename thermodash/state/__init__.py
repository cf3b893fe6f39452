"""Explicit state store for the attendance dashboard.

A single :class:`DashboardState` is created per dashboard and handed by
reference to every poller. Each poller writes only the fields it owns;
``system.connection_state`` and ``last_error`` are shared and last write wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from thermodash.dashboard.models import (
    AttendanceRecord,
    ConnectionState,
    LiveReading,
    Settings,
    Statistics,
    SystemStatus,
    TemperatureStatus,
)


class SettingsValidationError(ValueError):
    """Raised when a settings update holds invalid values."""


def classify_temperature(value: float | None, threshold: float) -> TemperatureStatus:
    """Classify a body temperature against the threshold.

    Readings strictly above the threshold are ``High``, everything else is
    ``Normal``. A missing reading is ``N/A``.
    """
    if value is None:
        return TemperatureStatus.NOT_AVAILABLE
    if value > threshold:
        return TemperatureStatus.HIGH
    return TemperatureStatus.NORMAL


def compute_statistics(records: list[AttendanceRecord]) -> Statistics:
    """Aggregate a record list. Averages only count present readings."""
    body = [r.body_temperature for r in records if r.body_temperature is not None]
    ambient = [r.ambient_temperature for r in records if r.ambient_temperature is not None]
    high = sum(1 for r in records if r.temperature_status == TemperatureStatus.HIGH)

    return Statistics(
        total_records=len(records),
        high_temp_count=high,
        avg_body_temp=sum(body) / len(body) if body else 0.0,
        avg_ambient_temp=sum(ambient) / len(ambient) if ambient else 0.0,
    )


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(loc) for loc in detail["loc"]) or "settings"
        parts.append(f"{location}: {detail['msg']}")
    return "Invalid settings: " + "; ".join(parts)


@dataclass
class DashboardState:
    """In-memory view state of the dashboard.

    Attributes:
        system: Backend status as reported by the last probe
        reading: Latest live reading
        records: Attendance records as last returned by the backend
        statistics: Aggregate over ``records``
        settings: User settings
        monitoring: Whether live polling is switched on
        last_error: Message shown in the error banner, if any
        frame: Most recent decoded camera frame
        passthrough_visible: Whether the raw video passthrough is still shown
        display_limit: Number of records exposed by ``recent_records``
    """
    system: SystemStatus = field(default_factory=SystemStatus)
    reading: LiveReading = field(default_factory=LiveReading)
    records: list[AttendanceRecord] = field(default_factory=list)
    statistics: Statistics = field(default_factory=Statistics)
    settings: Settings = field(default_factory=Settings)
    monitoring: bool = False
    last_error: str | None = None
    frame: bytes | None = None
    passthrough_visible: bool = True
    display_limit: int = 10

    @property
    def connection_state(self) -> ConnectionState:
        return self.system.connection_state

    def set_connection(self, state: ConnectionState) -> None:
        self.system.connection_state = state

    def set_error(self, message: str) -> None:
        """Overwrite the error banner."""
        self.last_error = message

    def mark_error(self, message: str) -> None:
        """Record a failed backend call: flag the connection and set the banner."""
        self.system.connection_state = ConnectionState.ERROR
        self.last_error = message

    def clear_error(self) -> None:
        self.last_error = None

    def apply_reading(self, reading: LiveReading) -> None:
        """Replace the live reading and present its frame, if any."""
        self.reading = reading
        if reading.frame is not None:
            self.show_frame(reading.frame)

    def show_frame(self, frame: bytes) -> None:
        # Once a frame is shown the passthrough stays hidden for the session
        self.frame = frame
        self.passthrough_visible = False

    def apply_records(self, records: list[AttendanceRecord]) -> None:
        """Replace the record list and recompute statistics from it."""
        self.records = list(records)
        self.statistics = compute_statistics(self.records)

    @property
    def recent_records(self) -> list[AttendanceRecord]:
        return self.records[: self.display_limit]

    @property
    def temperature_status(self) -> TemperatureStatus:
        return classify_temperature(
            self.reading.body_temperature, self.settings.temp_threshold
        )

    def update_settings(self, **changes: Any) -> Settings:
        """Validate and apply a partial settings update.

        Numeric strings are parsed. On invalid input the settings are left
        unchanged and the message is put in the error banner.

        Raises:
            SettingsValidationError: If any value is invalid
        """
        merged = self.settings.model_dump()
        merged.update(changes)
        try:
            settings = Settings.model_validate(merged)
        except ValidationError as e:
            message = _format_validation_error(e)
            self.set_error(message)
            raise SettingsValidationError(message) from e
        self.settings = settings
        return settings


__all__ = [
    "DashboardState",
    "SettingsValidationError",
    "classify_temperature",
    "compute_statistics",
]
