"""Shared test fixtures: detection events built from wire-format dicts."""

from __future__ import annotations

import math

import pytest

from dronewatch.config import AppConfig, ClusteringConfig, SearchConfig
from dronewatch.models import DetectedObject, DetectionEvent, LatLng
from dronewatch.processing.geo import EARTH_RADIUS_METERS

DEFENCE = LatLng(14.297567, 101.166279)


@pytest.fixture
def clustering_config() -> ClusteringConfig:
    return ClusteringConfig()


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(access_token="pk.test", debounce=0.01)


@pytest.fixture
def app_config() -> AppConfig:
    config = AppConfig()
    config.profiles.defensive.cam_id = "cam-def"
    config.profiles.defensive.token = "tok-def"
    config.profiles.offensive.cam_id = "cam-off"
    config.profiles.offensive.token = "tok-off"
    return config


def make_object(obj_id: str, lat=None, lng=None, **extra) -> DetectedObject:
    """Create a DetectedObject the way the API would send it."""
    data = {"obj_id": obj_id, "type": "drone", "objective": "recon", "size": "small"}
    if lat is not None:
        data["lat"] = lat
    if lng is not None:
        data["lng"] = lng
    data.update(extra)
    return DetectedObject.from_dict(data)


def make_event(objects: list[DetectedObject], timestamp: str = "2025-01-01T10:00:00Z",
               event_id: int = 1, cam_id: str = "cam-def") -> DetectionEvent:
    return DetectionEvent(id=event_id, cam_id=cam_id, timestamp=timestamp,
                          objects=tuple(objects), image_path=f"/uploads/{event_id}.jpg")


def event_dict(event_id: int, timestamp: str, objects: list[dict]) -> dict:
    return {
        "id": event_id,
        "cam_id": "cam-def",
        "camera": {"id": "cam-def", "name": "Team Alpha", "location": "defence"},
        "timestamp": timestamp,
        "image_path": f"/uploads/images/{event_id}.jpg",
        "objects": objects,
    }


def north_of(origin: LatLng, meters: float) -> LatLng:
    """Point due north of ``origin`` at the given haversine distance."""
    return LatLng(origin.lat + math.degrees(meters / EARTH_RADIUS_METERS), origin.lng)
