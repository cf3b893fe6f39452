"""Polling loops that reconcile backend data into the dashboard state.

This module provides the periodic task runner and the four components that
talk to the backend:

- StatusProber: one-shot capability/reachability probe
- LivePoller: fast loop over the latest frame while monitoring
- RecordsPoller: slow loop over the attendance log, always running
- CaptureTrigger: attendance capture followed by a forced records refresh

Ticks of one loop never overlap: the next tick is due ``interval`` seconds
after the previous one started, or immediately if it overran. Each poller
also keeps a generation counter so a response that completes after it was
superseded or stopped is discarded.

Example:
    >>> prober = StatusProber(client, state)
    >>> records = RecordsPoller(client, state, interval=30.0)
    >>> await prober.probe()
    >>> records.start()
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import contextlib
import math
import random
import time
from enum import Enum
from typing import Awaitable, Callable

from thermodash.client import BackendClient, BackendError, NetworkError
from thermodash.dashboard.logging import log_error
from thermodash.dashboard.models import (
    AttendanceRecord,
    ConnectionState,
    FramePayload,
    LiveReading,
    SensorType,
    Statistics,
    SystemStatus,
)
from thermodash.state import DashboardState, compute_statistics

PROBE_FAILED = "Failed to connect to camera system"
CONNECTION_LOST = "Connection lost to camera system"
SERVER_ERROR = "Server error"
INVALID_FRAME = "Invalid frame data from camera system"
CAPTURE_FAILED = "Capture failed"
CAPTURE_NETWORK_ERROR = "Failed to capture attendance"
RECORDS_FAILED = "Failed to load attendance records"
RECORDS_NETWORK_ERROR = "Network error while fetching records"

BODY_TEMP_RANGE = (36.5, 38.5)
AMBIENT_TEMP_RANGE = (22.0, 25.0)
MAX_SYNTHETIC_FACES = 2


class TaskState(Enum):
    """Lifecycle of a periodic task."""
    STOPPED = "stopped"
    RUNNING = "running"


class PeriodicTask:
    """Run an async callback on a fixed period until stopped.

    The first tick runs as soon as the task starts. Exceptions escaping the
    callback are logged and the loop keeps ticking.

    Example:
        >>> task = PeriodicTask("records", poller.refresh, interval=30.0)
        >>> task.start()
        >>> await task.stop()
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[object]],
        interval: float,
    ) -> None:
        """Initialize the task.

        Args:
            name: Task name, used for logging
            callback: Coroutine function run on every tick
            interval: Seconds between tick starts
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self.ticks = 0
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> TaskState:
        if self._task is not None and not self._task.done():
            return TaskState.RUNNING
        return TaskState.STOPPED

    @property
    def is_running(self) -> bool:
        return self.state == TaskState.RUNNING

    def start(self) -> None:
        """Arm the loop. Does nothing if already running."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"thermodash-{self.name}"
        )

    async def stop(self) -> None:
        """Disarm the loop, abandoning a tick in flight."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            self.ticks += 1
            try:
                await self._callback()
            except Exception as e:
                log_error(self.name, f"Unhandled error in {self.name} tick: {e}")
            remaining = self.interval - (loop.time() - started)
            await asyncio.sleep(max(0.0, remaining))


def _decode_frame(data: str) -> bytes | None:
    """Decode a base64 frame, tolerating line breaks. None if undecodable."""
    try:
        frame = base64.b64decode(data)
    except binascii.Error:
        return None
    return frame or None


def synthesize_reading(rng: random.Random, faces: bool = False) -> LiveReading:
    """Generate a display-only reading for a mock sensor.

    Args:
        rng: Random source
        faces: Whether to also make up a face count
    """
    return LiveReading(
        body_temperature=rng.uniform(*BODY_TEMP_RANGE),
        ambient_temperature=rng.uniform(*AMBIENT_TEMP_RANGE),
        faces_detected=rng.randint(0, MAX_SYNTHETIC_FACES) if faces else 0,
        synthesized=True,
    )


class StatusProber:
    """Fetch backend capabilities and reachability."""

    def __init__(self, client: BackendClient, state: DashboardState) -> None:
        self.client = client
        self.state = state

    async def probe_status(self) -> SystemStatus:
        """Fetch the backend status.

        Raises:
            NetworkError: If the probe fails
        """
        payload = await self.client.get_system_status()
        return SystemStatus(
            connection_state=ConnectionState.CONNECTED,
            sensor_type=SensorType.parse(payload.sensor_type),
            camera_type=payload.camera_type or "unknown",
            sensor_initialized=payload.sensor_initialized,
        )

    async def probe(self) -> bool:
        """Probe and reconcile the result into the state.

        On failure the sensor and camera types keep their last known values.

        Returns:
            True if the backend answered successfully
        """
        try:
            status = await self.probe_status()
        except BackendError as e:
            self.state.mark_error(e.backend_message or PROBE_FAILED)
            return False
        except NetworkError:
            self.state.mark_error(PROBE_FAILED)
            return False

        self.state.system = status
        self.state.clear_error()
        return True


class RecordsPoller:
    """Keep the attendance log and its statistics up to date."""

    def __init__(
        self,
        client: BackendClient,
        state: DashboardState,
        interval: float = 30.0,
    ) -> None:
        self.client = client
        self.state = state
        self._issued = 0
        self._applied = 0
        self._task = PeriodicTask("records", self.refresh, interval)

    @property
    def task(self) -> PeriodicTask:
        return self._task

    async def fetch_records(self) -> tuple[list[AttendanceRecord], Statistics]:
        """Fetch the attendance log.

        Statistics are computed from the returned records; the backend's own
        aggregate is not used.

        Raises:
            NetworkError: If the fetch fails
        """
        payload = await self.client.get_records()
        records = list(payload.records)
        return records, compute_statistics(records)

    async def refresh(self) -> bool:
        """Fetch and replace the record list wholesale.

        On failure the previous list is kept.

        Returns:
            True if the state now holds the fetched records
        """
        self._issued += 1
        generation = self._issued
        try:
            records, _ = await self.fetch_records()
        except BackendError as e:
            if generation > self._applied:
                self.state.set_error(e.backend_message or RECORDS_FAILED)
            return False
        except NetworkError:
            if generation > self._applied:
                self.state.set_error(RECORDS_NETWORK_ERROR)
            return False

        if generation < self._applied:
            # A fetch issued later has already landed
            return False
        self._applied = generation
        self.state.apply_records(records)
        return True

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()


class CaptureTrigger:
    """Request attendance captures from the backend."""

    def __init__(
        self,
        client: BackendClient,
        state: DashboardState,
        records_poller: RecordsPoller,
    ) -> None:
        self.client = client
        self.state = state
        self.records_poller = records_poller
        self.captures = 0
        self.last_capture_at: float | None = None

    def seconds_since_last_capture(self) -> float:
        if self.last_capture_at is None:
            return math.inf
        return time.monotonic() - self.last_capture_at

    async def capture(
        self,
        auto_capture: bool | None = None,
        temp_threshold: float | None = None,
    ) -> bool:
        """Post a capture request, then refresh the records immediately.

        Args:
            auto_capture: Defaults to the current setting
            temp_threshold: Defaults to the current setting

        Returns:
            True if the backend accepted the capture
        """
        settings = self.state.settings
        if auto_capture is None:
            auto_capture = settings.auto_capture
        if temp_threshold is None:
            temp_threshold = settings.temp_threshold

        self.captures += 1
        self.last_capture_at = time.monotonic()
        try:
            await self.client.capture(auto_capture, temp_threshold)
        except BackendError as e:
            self.state.set_error(e.backend_message or CAPTURE_FAILED)
            return False
        except NetworkError:
            self.state.set_error(CAPTURE_NETWORK_ERROR)
            return False

        self.state.clear_error()
        await self.records_poller.refresh()
        return True


class LivePoller:
    """Poll the latest frame and readings while monitoring is on.

    When faces are detected and auto-capture is enabled, a capture is
    scheduled after ``capture_delay`` seconds. At most one capture is pending
    at a time, none is scheduled while the last capture is younger than the
    ``capture_interval`` setting, and a pending capture is cancelled on stop.
    """

    def __init__(
        self,
        client: BackendClient,
        state: DashboardState,
        interval: float = 1.0,
        capture_trigger: CaptureTrigger | None = None,
        capture_delay: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            client: Backend client
            state: Shared dashboard state
            interval: Seconds between polls
            capture_trigger: Used for auto-capture, disabled if None
            capture_delay: Seconds between detection and capture
            rng: Random source for mock readings
        """
        self.client = client
        self.state = state
        self.capture_trigger = capture_trigger
        self.capture_delay = capture_delay
        self.rng = rng or random.Random()
        self._generation = 0
        self._pending_capture: asyncio.Task[None] | None = None
        self._task = PeriodicTask("live", self.poll_once, interval)

    @property
    def task(self) -> PeriodicTask:
        return self._task

    @property
    def capture_pending(self) -> bool:
        return self._pending_capture is not None and not self._pending_capture.done()

    async def fetch_reading(self) -> LiveReading:
        """Fetch the latest reading.

        Missing temperatures are synthesized when the sensor is a mock, and
        left absent otherwise. An undecodable frame is dropped from the
        reading.

        Raises:
            NetworkError: If the fetch fails
        """
        payload = await self.client.get_latest_frame()
        reading, _ = self._build_reading(payload)
        return reading

    def _build_reading(self, payload: FramePayload) -> tuple[LiveReading, bool]:
        """Build a reading from a frame payload.

        Returns:
            Tuple of (reading, whether the frame, if any, decoded)
        """
        mock = self.state.system.sensor_type == SensorType.MOCK
        body = payload.body_temperature
        ambient = payload.ambient_temperature
        synthesized = False
        if body is None and mock:
            body = self.rng.uniform(*BODY_TEMP_RANGE)
            synthesized = True
        if ambient is None and mock:
            ambient = self.rng.uniform(*AMBIENT_TEMP_RANGE)
            synthesized = True

        frame = None
        frame_ok = True
        if payload.frame:
            frame = _decode_frame(payload.frame)
            frame_ok = frame is not None

        reading = LiveReading(
            body_temperature=body,
            ambient_temperature=ambient,
            faces_detected=payload.faces_detected,
            frame=frame,
            synthesized=synthesized,
        )
        return reading, frame_ok

    async def poll_once(self) -> LiveReading | None:
        """Run one live cycle against the state.

        Temperatures and faces are applied even when the frame cannot be
        decoded; the previous frame is then kept and the error reported.

        Returns:
            The reading now held by the state, or None if the cycle failed
            without a fallback or was superseded
        """
        generation = self._generation
        try:
            payload = await self.client.get_latest_frame()
        except BackendError as e:
            return self._fail(generation, e.backend_message or SERVER_ERROR)
        except NetworkError:
            return self._fail(generation, CONNECTION_LOST)

        if generation != self._generation:
            return None

        reading, frame_ok = self._build_reading(payload)
        self.state.apply_reading(reading)
        self.state.set_connection(ConnectionState.CONNECTED)
        if frame_ok:
            self.state.clear_error()
        else:
            self.state.set_error(INVALID_FRAME)
        self._maybe_schedule_capture(reading)
        return reading

    def _fail(self, generation: int, message: str) -> LiveReading | None:
        if generation != self._generation:
            return None
        self.state.mark_error(message)
        if self.state.system.sensor_type != SensorType.MOCK:
            return None
        # Keep the display moving while a mock backend is unreachable
        reading = synthesize_reading(self.rng, faces=True)
        self.state.apply_reading(reading)
        return reading

    def _maybe_schedule_capture(self, reading: LiveReading) -> None:
        if self.capture_trigger is None or reading.faces_detected <= 0:
            return
        settings = self.state.settings
        if not settings.auto_capture or not self.state.monitoring:
            return
        if self.capture_pending:
            return
        if self.capture_trigger.seconds_since_last_capture() < settings.capture_interval:
            return
        self._pending_capture = asyncio.get_running_loop().create_task(
            self._delayed_capture(), name="thermodash-auto-capture"
        )

    async def _delayed_capture(self) -> None:
        await asyncio.sleep(self.capture_delay)
        await self.capture_trigger.capture()

    def start(self) -> None:
        """Arm the loop; the first poll runs immediately."""
        self._task.start()

    async def stop(self) -> None:
        """Disarm the loop and cancel any pending auto-capture."""
        self._generation += 1
        await self._task.stop()
        pending, self._pending_capture = self._pending_capture, None
        if pending is not None and not pending.done():
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pending


__all__ = [
    "TaskState",
    "PeriodicTask",
    "StatusProber",
    "LivePoller",
    "RecordsPoller",
    "CaptureTrigger",
    "synthesize_reading",
    "PROBE_FAILED",
    "CONNECTION_LOST",
    "SERVER_ERROR",
    "INVALID_FRAME",
    "CAPTURE_FAILED",
    "CAPTURE_NETWORK_ERROR",
    "RECORDS_FAILED",
    "RECORDS_NETWORK_ERROR",
]
