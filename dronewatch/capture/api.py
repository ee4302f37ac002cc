"""HTTP client for the detection history API."""

from __future__ import annotations

import logging

import httpx

from dronewatch.models import DetectionEvent

logger = logging.getLogger(__name__)

TOKEN_HEADER = "x-camera-token"


class ApiError(Exception):
    """A history or clear request failed; the message is user-presentable."""


class DetectionApiClient:
    """Fetches and clears per-camera detection history."""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def fetch_history(self, cam_id: str, token: str) -> list[DetectionEvent]:
        """Return the camera's historical events in the order the API sends them."""
        url = f"{self._base_url}/api/object-detection/{cam_id}"
        try:
            response = await self._client.get(url, headers={TOKEN_HEADER: token})
        except httpx.HTTPError as exc:
            raise ApiError(f"Unable to fetch detections: {exc}") from exc

        if response.status_code >= 400:
            raise ApiError(response.text or f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError("Invalid JSON in detection response") from exc

        if not isinstance(body, dict) or not body.get("success", False):
            raise ApiError("Detection API reported failure")

        events = []
        for item in body.get("data") or []:
            try:
                events.append(DetectionEvent.from_dict(item))
            except (ValueError, TypeError, AttributeError):
                logger.warning("Skipping malformed detection event: %r", item)
        logger.debug("Fetched %d events for camera %s", len(events), cam_id)
        return events

    async def clear_history(self, cam_id: str, token: str) -> None:
        url = f"{self._base_url}/api/object-detection/clear/{cam_id}"
        try:
            response = await self._client.delete(url, headers={TOKEN_HEADER: token})
        except httpx.HTTPError as exc:
            raise ApiError(str(exc) or "Failed to clear history") from exc

        if not response.is_success:
            raise ApiError(response.text or "Failed to clear history")
        logger.info("Cleared detection history for camera %s", cam_id)

    async def close(self) -> None:
        await self._client.aclose()
