"""Dashboard controller composing the pollers over one state store."""

from __future__ import annotations

import random
from pathlib import Path
from typing import Any

from thermodash.client import BackendClient
from thermodash.config import DashboardConfig
from thermodash.export import export_filename, export_records, write_export
from thermodash.polling import CaptureTrigger, LivePoller, RecordsPoller, StatusProber
from thermodash.state import DashboardState

from .database import get_database
from .models import (
    ConnectionState,
    DashboardSnapshot,
    ReadingResponse,
    Settings,
)


class Dashboard:
    """Headless attendance dashboard.

    Owns the state store, the backend client and the pollers. ``start()``
    probes the backend and arms the records loop; monitoring arms and disarms
    the live loop; ``close()`` tears everything down.

    Example:
        >>> dashboard = Dashboard(DashboardConfig.from_env())
        >>> await dashboard.start()
        >>> await dashboard.start_monitoring()
        >>> dashboard.snapshot().reading.temperature_status
        <TemperatureStatus.NORMAL: 'Normal'>
        >>> await dashboard.close()
    """

    def __init__(
        self,
        config: DashboardConfig | None = None,
        client: BackendClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the dashboard.

        Args:
            config: Dashboard configuration, defaults to the built-in values
            client: Backend client, built from ``config`` if None
            rng: Random source for mock readings
        """
        self.config = config or DashboardConfig()
        self.client = client or BackendClient(
            self.config.backend_url, timeout=self.config.request_timeout
        )
        self.state = DashboardState(
            settings=self.config.settings.model_copy(),
            display_limit=self.config.display_limit,
        )
        self.status_prober = StatusProber(self.client, self.state)
        self.records_poller = RecordsPoller(
            self.client, self.state, interval=self.config.records_interval
        )
        self.capture_trigger = CaptureTrigger(
            self.client, self.state, self.records_poller
        )
        self.live_poller = LivePoller(
            self.client,
            self.state,
            interval=self.config.live_interval,
            capture_trigger=self.capture_trigger,
            capture_delay=self.config.capture_delay,
            rng=rng,
        )
        self._started = False
        self._closed = False
        # Bumped on every monitoring start and stop
        self._monitoring_generation = 0

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Probe the backend once and arm the records loop.

        Raises:
            RuntimeError: If the dashboard was already closed
        """
        if self._closed:
            raise RuntimeError("Dashboard has been closed and cannot be restarted")
        if self._started:
            return
        self._started = True
        get_database(self.config.events_db, max_events=self.config.events_retention)
        await self.status_prober.probe()
        self.records_poller.start()

    async def close(self) -> None:
        """Stop both loops and release the backend client.

        A closed dashboard cannot be started again.
        """
        await self.stop_monitoring()
        await self.records_poller.stop()
        self._started = False
        self._closed = True
        if not self.client.is_closed:
            await self.client.aclose()

    async def refresh_status(self) -> bool:
        """On-demand status check.

        Returns:
            True if the backend answered successfully
        """
        return await self.status_prober.probe()

    async def start_monitoring(self) -> None:
        """Re-validate the backend, then arm the live loop."""
        if self.state.monitoring:
            return
        self.state.monitoring = True
        self._monitoring_generation += 1
        generation = self._monitoring_generation
        await self.status_prober.probe()
        if generation != self._monitoring_generation:
            # Stopped (or restarted) while the status check was in flight
            return
        self.live_poller.start()

    async def stop_monitoring(self) -> None:
        """Disarm the live loop and cancel any pending auto-capture."""
        self.state.monitoring = False
        self._monitoring_generation += 1
        await self.live_poller.stop()
        if self.state.connection_state != ConnectionState.ERROR:
            self.state.set_connection(ConnectionState.DISCONNECTED)

    async def toggle_monitoring(self) -> bool:
        """Flip monitoring and return the new value."""
        if self.state.monitoring:
            await self.stop_monitoring()
        else:
            await self.start_monitoring()
        return self.state.monitoring

    async def capture(self) -> bool:
        """Manual attendance capture with the current settings."""
        return await self.capture_trigger.capture()

    async def refresh_records(self) -> bool:
        """Manual records refresh, outside the regular schedule."""
        return await self.records_poller.refresh()

    def update_settings(self, **changes: Any) -> Settings:
        return self.state.update_settings(**changes)

    def dismiss_error(self) -> None:
        self.state.clear_error()

    def export(self) -> tuple[str, str]:
        """Export the loaded records.

        Returns:
            Tuple of (file name, JSON text)
        """
        return export_filename(), export_records(self.state.records)

    def save_export(self, directory: str | Path) -> Path:
        """Write the export file into ``directory``."""
        return write_export(self.state.records, directory)

    def snapshot(self) -> DashboardSnapshot:
        """Build the view model of the current state."""
        state = self.state
        reading = state.reading
        return DashboardSnapshot(
            system=state.system.model_copy(),
            sensor_label=state.system.sensor_type.label,
            reading=ReadingResponse(
                body_temperature=reading.body_temperature,
                ambient_temperature=reading.ambient_temperature,
                faces_detected=reading.faces_detected,
                temperature_status=state.temperature_status,
                synthesized=reading.synthesized,
                has_frame=state.frame is not None,
            ),
            monitoring=state.monitoring,
            live_poller=self.live_poller.task.state.value,
            records_poller=self.records_poller.task.state.value,
            passthrough_visible=state.passthrough_visible,
            last_error=state.last_error,
            settings=state.settings,
            statistics=state.statistics,
            records=state.recent_records,
        )
