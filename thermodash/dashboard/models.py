"""Data models for the attendance dashboard."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict


class ConnectionState(str, Enum):
    """Reachability of the camera backend as last observed."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class SensorType(str, Enum):
    """Temperature sensor reported by the backend."""

    SMBUS = "smbus"
    CIRCUITPYTHON = "circuitpython"
    MOCK = "mock"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "SensorType":
        """Map a backend sensor string, treating a missing value as mock."""
        if not value:
            return cls.MOCK
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_physical(self) -> bool:
        return self in (SensorType.SMBUS, SensorType.CIRCUITPYTHON)

    @property
    def label(self) -> str:
        """Human-readable sensor name shown in the header."""
        return _SENSOR_LABELS.get(self, "No Sensor")


_SENSOR_LABELS = {
    SensorType.SMBUS: "MLX90614 (SMBus)",
    SensorType.CIRCUITPYTHON: "MLX90614 (CircuitPython)",
    SensorType.MOCK: "Mock Sensor",
}


class TemperatureStatus(str, Enum):
    """Classification of a body temperature against the threshold."""

    HIGH = "High"
    NORMAL = "Normal"
    NOT_AVAILABLE = "N/A"


EventType = Literal["probe", "poll", "capture", "records", "error"]


# Backend wire payloads


class BackendPayload(BaseModel):
    """Common envelope of every backend response."""

    model_config = ConfigDict(extra="ignore")

    status: str = ""
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class StatusPayload(BackendPayload):
    """Response of ``/system_status/``."""

    sensor_type: str | None = None
    camera_type: str | None = None
    sensor_initialized: bool | None = None


class FramePayload(BackendPayload):
    """Response of ``/latest_frame/``."""

    body_temperature: float | None = None
    ambient_temperature: float | None = None
    faces_detected: int = 0
    frame: str | None = None

    @field_validator("faces_detected", mode="before")
    @classmethod
    def _default_faces(cls, value: Any) -> Any:
        return 0 if value is None else value


class AttendanceRecord(BaseModel):
    """A stored attendance record, as created by the backend."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int | str | None = None
    timestamp: str | None = None
    person_id: int | str | None = None
    faces_detected: int = 0
    body_temperature: float | None = None
    ambient_temperature: float | None = None
    temperature_status: TemperatureStatus = TemperatureStatus.NOT_AVAILABLE
    sensor_type: str | None = None

    @field_validator("faces_detected", mode="before")
    @classmethod
    def _default_faces(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("temperature_status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        if isinstance(value, TemperatureStatus):
            return value
        try:
            return TemperatureStatus(value)
        except ValueError:
            return TemperatureStatus.NOT_AVAILABLE


class StatisticsPayload(BaseModel):
    """Aggregate statistics as reported by the backend."""

    model_config = ConfigDict(extra="ignore")

    total_records: int = 0
    high_temp_count: int = 0
    avg_body_temp: float = 0.0
    avg_ambient_temp: float = 0.0

    @field_validator("*", mode="before")
    @classmethod
    def _default_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class RecordsPayload(BackendPayload):
    """Response of ``/records/``."""

    records: list[AttendanceRecord] = Field(default_factory=list)
    statistics: StatisticsPayload | None = None

    @field_validator("records", mode="before")
    @classmethod
    def _default_records(cls, value: Any) -> Any:
        return [] if value is None else value


class CapturePayload(BackendPayload):
    """Response of ``/capture/``."""


# Client-side state


class SystemStatus(BaseModel):
    """Backend capabilities and reachability."""

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    sensor_type: SensorType = SensorType.UNKNOWN
    camera_type: str = "unknown"
    sensor_initialized: bool | None = None


class LiveReading(BaseModel):
    """The most recent live sample. Replaced wholesale every cycle."""

    body_temperature: float | None = None
    ambient_temperature: float | None = None
    faces_detected: int = 0
    frame: bytes | None = None
    synthesized: bool = False


class Statistics(BaseModel):
    """Aggregate over the loaded attendance records."""

    total_records: int = 0
    high_temp_count: int = 0
    avg_body_temp: float = 0.0
    avg_ambient_temp: float = 0.0


class Settings(BaseModel):
    """User-editable dashboard settings."""

    model_config = ConfigDict(extra="forbid")

    auto_capture: bool = True
    temp_threshold: float = Field(default=37.5, gt=0, allow_inf_nan=False)
    capture_interval: int = Field(default=5, gt=0)


# Event log


class EventSummary(TypedDict):
    """Event log summary type."""

    total_events: int
    total_errors: int
    polls: int
    captures: int


class EndpointStats(TypedDict):
    """Per-endpoint call stats type."""

    endpoint: str
    calls: int
    errors: int
    avg_duration_ms: float


class ClientEvent(BaseModel):
    """A single backend call recorded in the event log."""

    id: int | None = None
    timestamp: datetime
    event_type: EventType
    endpoint: str
    status: str
    message: str | None = None
    duration_ms: float | None = None


# Dashboard API responses


class ReadingResponse(BaseModel):
    """Live reading as presented to the front end."""

    body_temperature: float | None
    ambient_temperature: float | None
    faces_detected: int
    temperature_status: TemperatureStatus
    synthesized: bool
    has_frame: bool


class DashboardSnapshot(BaseModel):
    """Everything the front end needs to render one frame of the dashboard."""

    system: SystemStatus
    sensor_label: str
    reading: ReadingResponse
    monitoring: bool
    live_poller: str
    records_poller: str
    passthrough_visible: bool
    last_error: str | None
    settings: Settings
    statistics: Statistics
    records: list[AttendanceRecord]


class SettingsUpdate(BaseModel):
    """Raw settings input; values are validated by the settings store."""

    auto_capture: Any = None
    temp_threshold: Any = None
    capture_interval: Any = None


class ActionResponse(BaseModel):
    """Outcome of a user-triggered action."""

    success: bool
    monitoring: bool
    last_error: str | None = None


class StatsResponse(BaseModel):
    """Event log stats response."""

    total_events: int
    total_errors: int
    polls: int
    captures: int
    error_rate: float


class EndpointsResponse(BaseModel):
    """Per-endpoint stats response."""

    endpoints: list[EndpointStats]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    connection: ConnectionState
    timestamp: datetime


class EventLogResponse(BaseModel):
    """Event log response."""

    events: list[ClientEvent]
    total: int
    page: int
    limit: int
