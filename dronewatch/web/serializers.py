"""JSON-ready dict builders for pipeline snapshots."""

from __future__ import annotations

from typing import Any, Optional

from dronewatch.models import LatLng
from dronewatch.pipeline import FeedSnapshot
from dronewatch.processing.aggregator import LatestObjectEntry
from dronewatch.processing.alerter import Intruder, format_distance, format_eta
from dronewatch.processing.clusterer import MarkerDescriptor, TargetMarker
from dronewatch.processing.geo import resolve_speed
from dronewatch.processing.geofence import ring_to_geojson


def point_dict(point: Optional[LatLng]) -> Optional[dict]:
    return point.to_dict() if point is not None else None


def entry_dict(entry: LatestObjectEntry) -> dict:
    return {"object": entry.object.to_dict(), "last_seen": entry.last_seen}


def marker_dict(marker: MarkerDescriptor) -> dict:
    data: dict[str, Any] = {"type": marker.kind, "lat": marker.lat, "lng": marker.lng}
    if marker.is_cluster:
        data["objects"] = [obj.to_dict() for obj in marker.objects]
        data["count"] = len(marker.objects)
    else:
        data["object"] = marker.object.to_dict()
    return data


def target_dict(target: TargetMarker) -> dict:
    return {"lat": target.lat, "lng": target.lng, "obj_id": target.object.obj_id}


def intruder_dict(intruder: Intruder) -> dict:
    speed = resolve_speed(intruder.object)
    return {
        "object": intruder.object.to_dict(),
        "distance_meters": intruder.distance_meters,
        "eta_seconds": intruder.eta_seconds,
        "distance": format_distance(intruder.distance_meters),
        "eta": format_eta(intruder.eta_seconds),
        "speed": f"{speed:g} m/s" if speed else "N/A",
    }


def geofence_dict(snapshot: FeedSnapshot) -> dict:
    return ring_to_geojson(list(snapshot.ring), {
        "role": snapshot.role.value,
        "radius": snapshot.radius,
        "center": point_dict(snapshot.defended_point),
    })


def snapshot_dict(snapshot: FeedSnapshot) -> dict:
    return {
        "role": snapshot.role.value,
        "label": snapshot.label,
        "version": snapshot.version,
        "connected": snapshot.is_connected,
        "loading": snapshot.is_loading,
        "ready": snapshot.is_ready,
        "error": snapshot.error,
        "zoom": snapshot.zoom,
        "defended_point": point_dict(snapshot.defended_point),
        "radius": snapshot.radius,
        "radius_label": format_distance(snapshot.radius),
        "selected_id": snapshot.selected_id,
        "focus_point": point_dict(snapshot.focus_point),
        "latest_event": snapshot.events[0].to_dict() if snapshot.events else None,
        "objects": [entry_dict(e) for e in snapshot.latest],
        "markers": [marker_dict(m) for m in snapshot.markers],
        "targets": [target_dict(t) for t in snapshot.targets],
        "intruders": [intruder_dict(i) for i in snapshot.intruders],
        "geofence": geofence_dict(snapshot),
    }


def message_dict(message: dict) -> dict:
    """Convert a pipeline message into plain JSON types."""
    data = {}
    for key, value in message.items():
        if isinstance(value, FeedSnapshot):
            data[key] = snapshot_dict(value)
        elif isinstance(value, LatLng):
            data[key] = value.to_dict()
        else:
            data[key] = value
    return data
