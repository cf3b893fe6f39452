"""Shared fixtures: a fake camera backend and an isolated event log."""

import asyncio
import base64
from collections import Counter
from typing import Any

import httpx
import pytest
from fastapi import Body, FastAPI

from thermodash.client import BackendClient
from thermodash.config import DashboardConfig
from thermodash.dashboard import database
from thermodash.dashboard.database import EventDatabase

BACKEND_URL = "http://backend.test"
FRAME_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


def make_record(record_id: int, body: float | None = 36.8, status: str = "Normal") -> dict[str, Any]:
    return {
        "id": record_id,
        "timestamp": f"2024-05-01T08:{record_id:02d}:00",
        "person_id": f"P{record_id:03d}",
        "faces_detected": 1,
        "body_temperature": body,
        "ambient_temperature": 23.5 if body is not None else None,
        "temperature_status": status,
        "sensor_type": "smbus",
    }


class FakeBackend:
    """In-process stand-in for the camera backend."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.capture_bodies: list[dict[str, Any]] = []
        self.status_delay = 0.0
        self.status_payload: dict[str, Any] = {
            "status": "success",
            "sensor_type": "smbus",
            "camera_type": "picamera2",
            "sensor_initialized": True,
        }
        self.frame_payload: dict[str, Any] = {
            "status": "success",
            "body_temperature": 36.9,
            "ambient_temperature": 23.1,
            "faces_detected": 0,
            "frame": None,
        }
        self.records: list[dict[str, Any]] = [make_record(1), make_record(2)]
        self.records_payload: dict[str, Any] | None = None
        self.capture_payload: dict[str, Any] = {"status": "success", "message": "Captured"}
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.get("/system_status/")
        async def system_status():
            self.calls["system_status"] += 1
            if self.status_delay:
                await asyncio.sleep(self.status_delay)
            return self.status_payload

        @app.get("/latest_frame/")
        async def latest_frame():
            self.calls["latest_frame"] += 1
            return self.frame_payload

        @app.get("/records/")
        async def records():
            self.calls["records"] += 1
            if self.records_payload is not None:
                return self.records_payload
            return {
                "status": "success",
                "records": list(reversed(self.records)),
                "statistics": {
                    "total_records": len(self.records),
                    "high_temp_count": 0,
                    "avg_body_temp": 0,
                    "avg_ambient_temp": 0,
                },
            }

        @app.post("/capture/")
        async def capture(body: dict[str, Any] = Body(...)):
            self.calls["capture"] += 1
            self.capture_bodies.append(body)
            if self.capture_payload.get("status") == "success":
                self.records.append(make_record(len(self.records) + 1))
            return self.capture_payload

        return app

    def set_frame(self, data: bytes = FRAME_BYTES, faces: int = 0) -> None:
        self.frame_payload["frame"] = base64.b64encode(data).decode("ascii")
        self.frame_payload["faces_detected"] = faces

    def client(self) -> BackendClient:
        return BackendClient(BACKEND_URL, transport=httpx.ASGITransport(app=self.app))


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Point the global event log at a temporary database."""
    db = EventDatabase(tmp_path / "events.db")
    monkeypatch.setattr(database, "_db", db)
    yield db
    db.close()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def backend_client(fake_backend):
    return fake_backend.client()


@pytest.fixture
def unreachable_client():
    """Client whose every request fails to connect."""
    return BackendClient(BACKEND_URL, transport=httpx.MockTransport(_refuse))


@pytest.fixture
def fast_config(tmp_path):
    """Config with short intervals for timing tests."""
    return DashboardConfig(
        backend_url=BACKEND_URL,
        live_interval=0.05,
        records_interval=0.05,
        capture_delay=0.01,
        events_db=tmp_path / "events.db",
    )
