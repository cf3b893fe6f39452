"""Logging utilities for backend calls."""

import time
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from .database import get_database
from .models import EventType

T = TypeVar("T")


def log_event(
    event_type: EventType,
    endpoint: str,
    status: str,
    message: str | None = None,
    duration_ms: float | None = None,
) -> None:
    """Log a backend call to the event database."""
    try:
        db = get_database()
        db.log_event(
            event_type=event_type,
            endpoint=endpoint,
            status=status,
            message=message,
            duration_ms=duration_ms,
        )
    except Exception as e:
        # Polling must not stop because the event log is unavailable
        print(f"Error logging event: {e}")


def log_error(
    endpoint: str,
    message: str,
    duration_ms: float | None = None,
) -> None:
    """Log an error event."""
    log_event("error", endpoint, "error", message, duration_ms)


def timed_request(
    event_type: EventType, endpoint: str
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator to log timing and outcome of an async backend call."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = (time.monotonic() - start) * 1000
                log_error(endpoint, str(e), duration)
                raise
            duration = (time.monotonic() - start) * 1000
            log_event(event_type, endpoint, "success", None, duration)
            return result

        return wrapper

    return decorator
