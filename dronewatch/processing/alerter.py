"""Proximity alerts: objects inside the detection radius of a defended point."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from dronewatch.models import DetectedObject, DetectionEvent, LatLng
from dronewatch.processing.geo import haversine_meters, resolve_position, resolve_speed


@dataclass(frozen=True)
class Intruder:
    object: DetectedObject
    distance_meters: float
    eta_seconds: Optional[float]


def find_intruders(events: Iterable[DetectionEvent],
                   defended_point: Optional[LatLng],
                   radius_meters: float) -> list[Intruder]:
    """Return objects within ``radius_meters`` of the defended point, closest first.

    Events are scanned in list order and the first in-range occurrence of each
    obj_id is kept; later occurrences are ignored even if closer.
    """
    if defended_point is None or radius_meters <= 0:
        return []

    seen: dict[str, Intruder] = {}
    for event in events:
        for obj in event.objects:
            pos = resolve_position(obj)
            if pos is None:
                continue
            distance = haversine_meters(defended_point, pos)
            if distance > radius_meters:
                continue
            if obj.obj_id in seen:
                continue
            speed = resolve_speed(obj)
            eta = distance / speed if speed is not None and speed > 0 else None
            seen[obj.obj_id] = Intruder(obj, distance, eta)

    return sorted(seen.values(), key=lambda i: i.distance_meters)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_distance(meters: float) -> str:
    if not math.isfinite(meters):
        return "N/A"
    if meters >= 1000:
        return f"{meters / 1000:.2f} km"
    return f"{_round_half_up(meters)} m"


def format_eta(seconds: Optional[float]) -> str:
    if seconds is None or not math.isfinite(seconds):
        return "N/A"
    if seconds < 60:
        return f"{max(1, _round_half_up(seconds))}s"
    minutes, secs = divmod(_round_half_up(seconds), 60)
    return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
