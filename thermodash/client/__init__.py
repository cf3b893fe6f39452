"""HTTP client for the thermal camera attendance backend.

Every backend response is a JSON object carrying a ``status`` discriminator.
Anything other than ``"success"`` is raised as :class:`BackendError` with the
backend's ``message``; transport failures, timeouts and bodies that are not a
JSON object are raised as :class:`NetworkError`.

Example:
    >>> from thermodash.client import BackendClient
    >>> async with BackendClient("http://192.168.75.104:8000") as client:
    ...     status = await client.get_system_status()
    ...     print(status.sensor_type, status.camera_type)
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from thermodash.dashboard.logging import timed_request
from thermodash.dashboard.models import (
    BackendPayload,
    CapturePayload,
    FramePayload,
    RecordsPayload,
    StatusPayload,
)

P = TypeVar("P", bound=BackendPayload)

STATUS_ENDPOINT = "/system_status/"
RECORDS_ENDPOINT = "/records/"
FRAME_ENDPOINT = "/latest_frame/"
CAPTURE_ENDPOINT = "/capture/"


class NetworkError(Exception):
    """Raised when a backend request does not complete successfully."""

    def __init__(self, message: str, endpoint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint


class BackendError(NetworkError):
    """Raised when the backend answers with a non-success status.

    Attributes:
        backend_message: The ``message`` field of the response, verbatim
        status: The ``status`` field of the response
    """

    def __init__(
        self,
        backend_message: str | None,
        status: str,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            backend_message or f"Backend returned status {status!r}", endpoint
        )
        self.backend_message = backend_message
        self.status = status


class BackendClient:
    """Async client for the backend JSON API.

    Attributes:
        base_url: Backend root URL
        default_headers: Headers sent with every request
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        default_headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = {"Accept": "application/json"}
        self.default_headers.update(default_headers or {})
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=self.default_headers,
            transport=transport,
        )

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload_type: type[P],
        json: dict[str, Any] | None = None,
    ) -> P:
        """Send a request and validate the response envelope.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            payload_type: Model the JSON body is validated against
            json: Optional JSON request body

        Returns:
            The validated payload

        Raises:
            BackendError: If the payload status is not ``"success"``
            NetworkError: On transport failure, an unreadable body, or a
                closed client
        """
        if self._client.is_closed:
            raise NetworkError(f"Request to {endpoint} on a closed client", endpoint)
        try:
            response = await self._client.request(method, endpoint, json=json)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {endpoint} timed out", endpoint) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {endpoint} failed: {e}", endpoint) from e

        # The body is interpreted regardless of the HTTP status code
        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError(
                f"Invalid JSON from {endpoint} (HTTP {response.status_code})", endpoint
            ) from e
        if not isinstance(body, dict):
            raise NetworkError(f"Unexpected response from {endpoint}", endpoint)

        try:
            payload = payload_type.model_validate(body)
        except ValidationError as e:
            raise NetworkError(f"Malformed response from {endpoint}", endpoint) from e

        if not payload.ok:
            raise BackendError(payload.message, payload.status, endpoint)
        return payload

    @timed_request("probe", STATUS_ENDPOINT)
    async def get_system_status(self) -> StatusPayload:
        """Fetch sensor and camera capabilities."""
        return await self._request("GET", STATUS_ENDPOINT, StatusPayload)

    @timed_request("poll", FRAME_ENDPOINT)
    async def get_latest_frame(self) -> FramePayload:
        """Fetch the latest frame, temperatures and face count."""
        return await self._request("GET", FRAME_ENDPOINT, FramePayload)

    @timed_request("records", RECORDS_ENDPOINT)
    async def get_records(self) -> RecordsPayload:
        """Fetch the stored attendance log and backend statistics."""
        return await self._request("GET", RECORDS_ENDPOINT, RecordsPayload)

    @timed_request("capture", CAPTURE_ENDPOINT)
    async def capture(self, auto_capture: bool, temp_threshold: float) -> CapturePayload:
        """Ask the backend to capture an attendance record.

        Args:
            auto_capture: Whether the request comes from auto-capture mode
            temp_threshold: Body temperature above which a record is "High"
        """
        return await self._request(
            "POST",
            CAPTURE_ENDPOINT,
            CapturePayload,
            json={"autoCapture": auto_capture, "tempThreshold": temp_threshold},
        )


__all__ = [
    "BackendClient",
    "NetworkError",
    "BackendError",
    "STATUS_ENDPOINT",
    "RECORDS_ENDPOINT",
    "FRAME_ENDPOINT",
    "CAPTURE_ENDPOINT",
]
