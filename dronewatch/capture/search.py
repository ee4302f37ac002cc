"""Debounced forward-geocoding place search (Mapbox)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from dronewatch.config import SearchConfig

logger = logging.getLogger(__name__)


class SearchError(Exception):
    """A place search failed; the message is user-presentable."""


@dataclass(frozen=True)
class SearchSuggestion:
    id: str
    label: str
    center: tuple[float, float]     # (lng, lat)

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "center": list(self.center)}


class PlaceSearch:
    """Autocomplete and direct lookup against the geocoding API.

    ``suggest`` is debounced: every call cancels the previous pending or
    in-flight lookup, and only the most recent call gets a result.
    """

    def __init__(self, config: SearchConfig, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._pending: asyncio.Task | None = None

    async def suggest(self, query: str) -> list[SearchSuggestion] | None:
        """Return up to ``suggestion_limit`` matches, or None if superseded."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            self._pending = None

        query = query.strip()
        if len(query) < self._config.min_query_length:
            return []

        task = asyncio.ensure_future(self._debounced_lookup(query))
        self._pending = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task.cancelled():
            return None
        if self._pending is task:
            self._pending = None

        exc = task.exception()
        if exc is not None:
            logger.warning("Suggestion lookup failed for %r: %s", query, exc)
            return []
        return task.result()

    async def search(self, query: str) -> SearchSuggestion | None:
        """Return the best match for a submitted query, or None when not found."""
        query = query.strip()
        if not query:
            raise SearchError("Please enter a location.")
        results = await self._lookup(query, limit=1)
        return results[0] if results else None

    async def close(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        await self._client.aclose()

    async def _debounced_lookup(self, query: str) -> list[SearchSuggestion]:
        await asyncio.sleep(self._config.debounce)
        return await self._lookup(query, limit=self._config.suggestion_limit)

    async def _lookup(self, query: str, limit: int) -> list[SearchSuggestion]:
        token = self._config.access_token
        if not token:
            raise SearchError("Missing Mapbox access token")

        url = f"{self._config.base_url.rstrip('/')}/{quote(query, safe='')}.json"
        try:
            response = await self._client.get(
                url, params={"access_token": token, "limit": limit},
            )
        except httpx.HTTPError as exc:
            raise SearchError("Unable to search location") from exc
        if not response.is_success:
            raise SearchError("Unable to search location")

        try:
            body = response.json()
        except ValueError as exc:
            raise SearchError("Unable to search location") from exc
        features = body.get("features") if isinstance(body, dict) else None
        if not isinstance(features, list):
            features = []

        suggestions = []
        for feature in features:
            if not isinstance(feature, dict):
                continue
            center = feature.get("center")
            if not isinstance(center, list) or len(center) != 2:
                continue
            try:
                lng, lat = float(center[0]), float(center[1])
            except (TypeError, ValueError, OverflowError):
                continue
            suggestions.append(SearchSuggestion(
                id=str(feature.get("id", "")),
                label=str(feature.get("place_name", "")),
                center=(lng, lat),
            ))
        return suggestions
