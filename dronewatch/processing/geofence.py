"""Geofence ring geometry around a defended point."""

from __future__ import annotations

import numpy as np

from dronewatch.models import LatLng
from dronewatch.processing.geo import EARTH_RADIUS_METERS


def build_ring(center: LatLng, radius_meters: float, steps: int = 64) -> list[LatLng]:
    """Approximate a circle of ``radius_meters`` as a closed polygon.

    Uses a flat projection: angular offsets are scaled to degrees and the
    longitude offset is stretched by 1/cos(latitude). Returns ``steps + 1``
    points with the last equal to the first.
    """
    if steps < 1:
        raise ValueError("steps must be at least 1")
    if radius_meters < 0:
        raise ValueError("radius must not be negative")

    angles = np.arange(steps + 1) / steps * 2 * np.pi
    dx = (radius_meters / EARTH_RADIUS_METERS) * np.cos(angles)
    dy = (radius_meters / EARTH_RADIUS_METERS) * np.sin(angles)

    lats = center.lat + np.degrees(dy)
    lngs = center.lng + np.degrees(dx) / np.cos(np.radians(center.lat))

    ring = [LatLng(float(lat), float(lng)) for lat, lng in zip(lats, lngs)]
    ring[-1] = ring[0]
    return ring


def ring_to_geojson(ring: list[LatLng], properties: dict | None = None) -> dict:
    """Wrap a ring as a GeoJSON Polygon feature ([lng, lat] order)."""
    return {
        "type": "Feature",
        "properties": dict(properties or {}),
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[p.lng, p.lat] for p in ring]] if ring else [],
        },
    }
