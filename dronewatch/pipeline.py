"""Feed controller: ingest → aggregate → cluster / alert → publish."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional

from dronewatch.capture.api import ApiError, DetectionApiClient
from dronewatch.capture.search import PlaceSearch, SearchError, SearchSuggestion
from dronewatch.capture.stream import LiveStream
from dronewatch.config import AppConfig, ProfileConfig
from dronewatch.models import DetectionEvent, FeedRole, LatLng
from dronewatch.notices import NoticeBoard
from dronewatch.processing.aggregator import (
    LatestObjectEntry,
    build_registry,
    filter_events,
    latest_objects,
)
from dronewatch.processing.alerter import Intruder, find_intruders, format_distance
from dronewatch.processing.clusterer import (
    MarkerDescriptor,
    SpatialClusterer,
    TargetMarker,
    target_markers,
)
from dronewatch.processing.geo import resolve_position, to_number
from dronewatch.processing.geofence import build_ring

logger = logging.getLogger(__name__)


@dataclass
class FeedState:
    """Mutable per-feed state owned by the pipeline."""
    role: FeedRole
    profile: ProfileConfig
    zoom: float
    defended_point: Optional[LatLng]
    radius: float
    events: list[DetectionEvent] = field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None
    selected_id: Optional[str] = None
    focus_point: Optional[LatLng] = None

    # Derived, rebuilt by the pipeline
    registry: dict[str, LatestObjectEntry] = field(default_factory=dict)
    latest: list[LatestObjectEntry] = field(default_factory=list)
    markers: list[MarkerDescriptor] = field(default_factory=list)
    targets: list[TargetMarker] = field(default_factory=list)
    intruders: list[Intruder] = field(default_factory=list)
    ring: list[LatLng] = field(default_factory=list)
    version: int = 0


@dataclass(frozen=True)
class FeedSnapshot:
    """Read-only view of one feed, handed to subscribers and the web layer."""
    role: FeedRole
    label: str
    version: int
    events: tuple[DetectionEvent, ...]
    latest: tuple[LatestObjectEntry, ...]
    markers: tuple[MarkerDescriptor, ...]
    targets: tuple[TargetMarker, ...]
    intruders: tuple[Intruder, ...]
    ring: tuple[LatLng, ...]
    zoom: float
    defended_point: Optional[LatLng]
    radius: float
    is_connected: bool
    is_loading: bool
    is_ready: bool
    error: Optional[str]
    selected_id: Optional[str]
    focus_point: Optional[LatLng]


class Pipeline:
    """Owns both camera feeds and re-derives their views on every input change.

    The registry is always rebuilt before clusters and intruders so
    subscribers never observe a partially updated feed.
    """

    def __init__(self, config: AppConfig,
                 api: DetectionApiClient | None = None,
                 search: PlaceSearch | None = None,
                 notices: NoticeBoard | None = None,
                 stream_factory: Callable[..., LiveStream] = LiveStream):
        self._config = config
        self._api = api
        self._search = search
        self._notices = notices or NoticeBoard()
        self._stream_factory = stream_factory
        self._clusterer = SpatialClusterer(config.clustering)

        self._feeds: dict[FeedRole, FeedState] = {}
        for role in FeedRole:
            profile = config.profile(role.value)
            feed = FeedState(
                role=role,
                profile=profile,
                zoom=config.clustering.default_zoom,
                defended_point=LatLng(profile.default_lat, profile.default_lng),
                radius=float(profile.radius),
            )
            self._feeds[role] = feed
            self._recompute(feed, ring=True, publish=False)

        self._streams: dict[FeedRole, LiveStream] = {}

        # Subscribers (for WebSocket push) and defence persistence hooks
        self._event_callbacks: list[Callable] = []
        self._defence_callbacks: list[Callable] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def notices(self) -> NoticeBoard:
        return self._notices

    @property
    def stats(self) -> dict[str, Any]:
        return {
            role.value: {
                "events": len(feed.events),
                "objects": len(feed.registry),
                "intruders": len(feed.intruders),
                "connected": self.is_connected(role),
                "ready": feed.profile.is_ready,
                "error": feed.error,
            }
            for role, feed in self._feeds.items()
        }

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the asyncio event loop for thread-safe callbacks."""
        self._loop = loop

    def add_event_callback(self, callback: Callable) -> None:
        """Register a callback for snapshot/selection/defence messages."""
        self._event_callbacks.append(callback)

    def remove_event_callback(self, callback: Callable) -> None:
        if callback in self._event_callbacks:
            self._event_callbacks.remove(callback)

    def add_defence_callback(self, callback: Callable[[FeedRole, LatLng, float], Any]) -> None:
        """Register a hook called when a defended point or radius changes."""
        self._defence_callbacks.append(callback)

    def feed(self, role: FeedRole | str) -> FeedState:
        return self._feeds[FeedRole(role)]

    def is_connected(self, role: FeedRole | str) -> bool:
        stream = self._streams.get(FeedRole(role))
        return stream is not None and stream.is_connected

    def snapshot(self, role: FeedRole | str) -> FeedSnapshot:
        feed = self.feed(role)
        return FeedSnapshot(
            role=feed.role,
            label=feed.profile.label,
            version=feed.version,
            events=tuple(feed.events),
            latest=tuple(feed.latest),
            markers=tuple(feed.markers),
            targets=tuple(feed.targets),
            intruders=tuple(feed.intruders),
            ring=tuple(feed.ring),
            zoom=feed.zoom,
            defended_point=feed.defended_point,
            radius=feed.radius,
            is_connected=self.is_connected(feed.role),
            is_loading=feed.is_loading,
            is_ready=feed.profile.is_ready,
            error=feed.error,
            selected_id=feed.selected_id,
            focus_point=feed.focus_point,
        )

    def history(self, role: FeedRole | str, start: Optional[date] = None,
                end: Optional[date] = None) -> list[DetectionEvent]:
        return filter_events(self.feed(role).events, start, end)

    # --- Inputs ---

    def load_history(self, role: FeedRole | str, events: list[DetectionEvent]) -> None:
        """Replace the feed's working event list with a fetched batch."""
        feed = self.feed(role)
        feed.events = list(events)
        feed.error = None
        self._recompute(feed)

    def push_event(self, role: FeedRole | str, event: DetectionEvent) -> None:
        """Insert a streamed event at the head of the working list."""
        feed = self.feed(role)
        feed.events.insert(0, event)
        logger.debug("Pushed event %s on %s feed (%d objects)",
                     event.id, feed.role.value, len(event.objects))
        self._recompute(feed)

    def clear_events(self, role: FeedRole | str) -> None:
        feed = self.feed(role)
        feed.events = []
        self._recompute(feed)

    def set_zoom(self, role: FeedRole | str, zoom: float) -> None:
        feed = self.feed(role)
        feed.zoom = float(zoom)
        self._recompute(feed, registry=False, alerts=False)

    def set_defended_point(self, role: FeedRole | str, point: LatLng) -> None:
        feed = self.feed(role)
        feed.defended_point = point
        self._recompute(feed, registry=False, markers=False, ring=True)
        self._notices.post(
            f"defence:{feed.role.value}", "info",
            f"Default marker: lat {point.lat:.5f} • lng {point.lng:.5f}",
            self._config.notices.defence_ttl,
        )
        self._notify_defence(feed)

    def set_radius(self, role: FeedRole | str, value: Any) -> bool:
        """Apply a new detection radius; invalid input keeps the current value."""
        feed = self.feed(role)
        radius = to_number(value)
        if radius is None or radius <= 0:
            logger.info("Rejected radius %r for %s feed, keeping %s",
                        value, feed.role.value, feed.radius)
            return False
        feed.radius = radius
        self._recompute(feed, registry=False, markers=False, ring=True)
        self._notify_defence(feed)
        return True

    def select_object(self, role: FeedRole | str, obj_id: str) -> Optional[LatLng]:
        """Focus the feed on a known object. Returns its position, or None."""
        feed = self.feed(role)
        entry = feed.registry.get(obj_id)
        if entry is None:
            return None
        pos = resolve_position(entry.object)
        if pos is None:
            return None
        feed.selected_id = obj_id
        feed.focus_point = pos
        self._publish({"type": "selection", "role": feed.role.value,
                       "obj_id": obj_id, "focus": pos})
        return pos

    # --- Transport ---

    async def refresh_history(self, role: FeedRole | str) -> None:
        """Fetch the camera's history and replace the feed's events with it."""
        feed = self.feed(role)
        if self._api is None or not feed.profile.is_ready:
            return
        feed.is_loading = True
        try:
            events = await self._api.fetch_history(feed.profile.cam_id, feed.profile.token)
        except ApiError as exc:
            feed.is_loading = False
            feed.error = str(exc)
            logger.warning("History fetch failed for %s feed: %s", feed.role.value, exc)
            self._publish_snapshot(feed)
            return
        feed.is_loading = False
        self.load_history(feed.role, events)
        logger.info("Loaded %d events for %s feed", len(events), feed.role.value)

    async def clear_history(self, role: FeedRole | str) -> bool:
        """Ask the API to clear the camera's history, then invalidate the feed."""
        feed = self.feed(role)
        key = f"clear:{feed.role.value}"
        ttl = self._config.notices.clear_ttl
        if self._api is None or not feed.profile.is_ready:
            self._notices.post(key, "error", "Failed to clear history", ttl)
            return False
        try:
            await self._api.clear_history(feed.profile.cam_id, feed.profile.token)
        except ApiError as exc:
            self._notices.post(key, "error", str(exc) or "Failed to clear history", ttl)
            logger.warning("Clear history failed for %s feed: %s", feed.role.value, exc)
            return False

        self._notices.post(key, "success", "History cleared successfully.", ttl)
        self.clear_events(feed.role)
        await self.refresh_history(feed.role)
        return True

    async def search_place(self, query: str) -> Optional[SearchSuggestion]:
        ttl = self._config.notices.search_ttl
        if self._search is None:
            self._notices.post("search", "error", "Search failed.", ttl)
            return None
        try:
            result = await self._search.search(query)
        except SearchError as exc:
            self._notices.post("search", "error", str(exc), ttl)
            return None
        if result is None:
            self._notices.post("search", "error", "Location not found.", ttl)
            return None
        self._notices.post("search", "success", result.label or "Location found.", ttl)
        return result

    async def suggest_places(self, query: str) -> Optional[list[SearchSuggestion]]:
        if self._search is None:
            return []
        return await self._search.suggest(query)

    async def start(self) -> None:
        """Fetch history and open live streams for every ready profile."""
        for role, feed in self._feeds.items():
            if not feed.profile.is_ready:
                logger.warning("%s profile has no camera id/token, feed disabled",
                               feed.profile.label or role.value)
                continue
            await self.refresh_history(role)
            if self._config.stream.enabled:
                self._start_stream(role)

    async def stop(self) -> None:
        for stream in self._streams.values():
            await stream.stop()
        self._streams.clear()
        if self._api is not None:
            await self._api.close()
        if self._search is not None:
            await self._search.close()
        logger.info("Pipeline stopped")

    def _start_stream(self, role: FeedRole) -> None:
        feed = self._feeds[role]
        stream_cfg = self._config.stream

        def on_event(event: DetectionEvent) -> None:
            self.push_event(role, event)

        async def on_connect() -> None:
            await self.refresh_history(role)

        stream = self._stream_factory(
            url=self._config.api.base_url,
            cam_id=feed.profile.cam_id,
            on_event=on_event,
            on_connect=on_connect,
            event_template=stream_cfg.event_template,
            reconnect_delay=stream_cfg.reconnect_delay,
            max_reconnect_delay=stream_cfg.max_reconnect_delay,
        )
        self._streams[role] = stream
        stream.start()

    # --- Derivation ---

    def _recompute(self, feed: FeedState, registry: bool = True,
                   markers: bool = True, alerts: bool = True,
                   ring: bool = False, publish: bool = True) -> None:
        if registry:
            feed.registry = build_registry(feed.events, self._config.pipeline.registry_policy)
            feed.latest = latest_objects(feed.registry)
        if registry or markers:
            objects = [entry.object for entry in feed.latest]
            feed.markers = self._clusterer.cluster(objects, feed.zoom)
            feed.targets = target_markers(objects)
        if alerts:
            feed.intruders = find_intruders(feed.events, feed.defended_point, feed.radius)
        if ring:
            if feed.defended_point is not None and feed.radius > 0:
                feed.ring = build_ring(feed.defended_point, feed.radius,
                                       self._config.defence.ring_steps)
            else:
                feed.ring = []
        feed.version += 1
        if feed.intruders and alerts:
            closest = feed.intruders[0]
            logger.debug("%s feed: %d intruders, closest %s at %s",
                         feed.role.value, len(feed.intruders),
                         closest.object.obj_id, format_distance(closest.distance_meters))
        if publish:
            self._publish_snapshot(feed)

    def _publish_snapshot(self, feed: FeedState) -> None:
        self._publish({"type": "snapshot", "role": feed.role.value,
                       "snapshot": self.snapshot(feed.role)})

    def _notify_defence(self, feed: FeedState) -> None:
        self._publish({"type": "defence", "role": feed.role.value,
                       "point": feed.defended_point, "radius": feed.radius})
        for callback in self._defence_callbacks:
            try:
                callback(feed.role, feed.defended_point, feed.radius)
            except Exception:
                logger.exception("Error in defence callback")

    def _publish(self, message: dict) -> None:
        for callback in self._event_callbacks:
            try:
                if self._loop is not None:
                    self._loop.call_soon_threadsafe(callback, message)
                else:
                    callback(message)
            except Exception:
                logger.exception("Error in event callback")
