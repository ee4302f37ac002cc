"""Coordinate resolution and distance helpers."""

from __future__ import annotations

import math
from typing import Any, Iterable, Optional

from geopy.distance import great_circle

from dronewatch.models import DetectedObject, LatLng

EARTH_RADIUS_METERS = 6371000.0

LAT_KEYS = ("lat", "latitude")
LNG_KEYS = ("lng", "lon", "long", "longitude")


def to_number(value: Any) -> Optional[float]:
    """Parse a finite number from a number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _extract(source: Optional[dict], keys: Iterable[str]) -> Optional[float]:
    if not source:
        return None
    for key in keys:
        number = to_number(source.get(key))
        if number is not None:
            return number
    return None


def _sources(obj: DetectedObject) -> list[dict]:
    direct = obj.raw or {"lat": obj.lat, "lng": obj.lng, "speed": obj.speed}
    sources = [direct]
    if obj.details is not None:
        sources.append(obj.details.raw or {
            "lat": obj.details.lat,
            "lng": obj.details.lng,
            "speed": obj.details.speed,
        })
    return sources


def _resolve(obj: DetectedObject, keys: Iterable[str]) -> Optional[float]:
    for source in _sources(obj):
        number = _extract(source, keys)
        if number is not None:
            return number
    return None


def object_latitude(obj: DetectedObject) -> Optional[float]:
    return _resolve(obj, LAT_KEYS)


def object_longitude(obj: DetectedObject) -> Optional[float]:
    return _resolve(obj, LNG_KEYS)


def resolve_position(obj: DetectedObject) -> Optional[LatLng]:
    """Return the object's position, or None when either axis is unresolvable.

    Fields on the object itself take precedence over its telemetry block.
    """
    lat = object_latitude(obj)
    lng = object_longitude(obj)
    if lat is None or lng is None:
        return None
    return LatLng(lat, lng)


def resolve_speed(obj: DetectedObject) -> Optional[float]:
    """Return the reported speed in m/s (legacy field first, then telemetry)."""
    return _resolve(obj, ("speed",))


def resolve_target(obj: DetectedObject) -> Optional[LatLng]:
    """Return the telemetry target point, if the object reports one."""
    if obj.details is None:
        return None
    lat = to_number(obj.details.tar_lat)
    lng = to_number(obj.details.tar_lng)
    if lat is None or lng is None:
        return None
    return LatLng(lat, lng)


def haversine_meters(origin: LatLng, dest: LatLng) -> float:
    """Great-circle distance between two points in meters on a 6371 km sphere.

    A latitude outside [-90, 90] cannot be placed on the sphere; such a pair
    is infinitely far apart.
    """
    try:
        return great_circle(
            (origin.lat, origin.lng), (dest.lat, dest.lng),
            radius=EARTH_RADIUS_METERS / 1000,
        ).meters
    except ValueError:
        return math.inf
