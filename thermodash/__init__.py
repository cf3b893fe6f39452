__version__ = "0.1"

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from thermodash.client import BackendClient, NetworkError, BackendError
    from thermodash.config import DashboardConfig
    from thermodash.dashboard.controller import Dashboard
    from thermodash.state import DashboardState, SettingsValidationError


# Lazy import mapping
_LAZY_IMPORTS = {
    "BackendClient": ("thermodash.client", "BackendClient"),
    "NetworkError": ("thermodash.client", "NetworkError"),
    "BackendError": ("thermodash.client", "BackendError"),
    "DashboardConfig": ("thermodash.config", "DashboardConfig"),
    "Dashboard": ("thermodash.dashboard.controller", "Dashboard"),
    "DashboardState": ("thermodash.state", "DashboardState"),
    "SettingsValidationError": ("thermodash.state", "SettingsValidationError"),
    "create_app": ("thermodash.dashboard.api", "create_app"),
    # Polling
    "StatusProber": ("thermodash.polling", "StatusProber"),
    "LivePoller": ("thermodash.polling", "LivePoller"),
    "RecordsPoller": ("thermodash.polling", "RecordsPoller"),
    "CaptureTrigger": ("thermodash.polling", "CaptureTrigger"),
    # Export
    "export_records": ("thermodash.export", "export_records"),
    "export_filename": ("thermodash.export", "export_filename"),
}
__all__ = [
    "BackendClient",
    "NetworkError",
    "BackendError",
    "DashboardConfig",
    "Dashboard",
    "DashboardState",
    "SettingsValidationError",
    "create_app",
    # Polling
    "StatusProber",
    "LivePoller",
    "RecordsPoller",
    "CaptureTrigger",
    # Export
    "export_records",
    "export_filename",
]


def __getattr__(name: str) -> Any:
    if name in _LAZY_IMPORTS:
        module_path, class_name = _LAZY_IMPORTS[name]
        module = __import__(module_path, fromlist=[class_name])
        return getattr(module, class_name)
    else:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    """Support for dir() and autocomplete."""
    return sorted(__all__ + ["client", "config", "dashboard", "polling", "state", "export", "__version__"])
