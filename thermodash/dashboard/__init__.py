"""Attendance Dashboard - state, controls and JSON API for the front end.

This package holds the dashboard controller and the FastAPI application that
exposes it. The browser front end is served separately and renders the
snapshots returned by ``/api/state``.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from thermodash.config import DashboardConfig

__all__ = ["get_dashboard_config"]


def get_dashboard_config(config: "DashboardConfig | None" = None) -> dict[str, Any]:
    """Get the client-facing dashboard configuration."""
    from thermodash.config import DashboardConfig

    config = config or DashboardConfig()
    return {
        "backendUrl": config.backend_url,
        "liveInterval": int(config.live_interval * 1000),  # ms
        "recordsInterval": int(config.records_interval * 1000),  # ms
        "captureDelay": int(config.capture_delay * 1000),  # ms
        "displayLimit": config.display_limit,
    }
