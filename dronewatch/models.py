"""Shared data models for detection feeds."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class FeedRole(str, Enum):
    OFFENSIVE = "offensive"
    DEFENSIVE = "defensive"


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class Camera:
    id: str = ""
    name: str = ""
    location: str = ""          # "defence" or "offence"

    @classmethod
    def from_dict(cls, data: dict) -> Camera:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            location=str(data.get("location", "")),
        )


@dataclass(frozen=True)
class Telemetry:
    """Nested telemetry block reported alongside an object.

    Values are kept as received (number, numeric string or None); parsing
    happens in :mod:`dronewatch.processing.geo`.
    """
    lat: Any = None
    lng: Any = None
    alt: Any = None
    speed: Any = None
    tar_lat: Any = None
    tar_lng: Any = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> Telemetry:
        return cls(
            lat=data.get("lat"),
            lng=data.get("lng"),
            alt=data.get("alt"),
            speed=data.get("speed"),
            tar_lat=data.get("tar_lat"),
            tar_lng=data.get("tar_lng", data.get("tar_long")),
            raw=dict(data),
        )


@dataclass(frozen=True)
class DetectedObject:
    """A single tracked entity inside a detection event."""
    obj_id: str
    type: str = ""
    objective: str = ""
    size: str = ""
    lat: Any = None
    lng: Any = None
    speed: Any = None           # legacy top-level speed (m/s)
    details: Optional[Telemetry] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> DetectedObject:
        if "obj_id" not in data:
            raise ValueError("detected object is missing obj_id")
        block = data.get("details")
        if not isinstance(block, dict):
            block = data.get("detail")
        return cls(
            obj_id=str(data["obj_id"]),
            type=str(data.get("type") or ""),
            objective=str(data.get("objective") or ""),
            size=str(data.get("size") or ""),
            lat=data.get("lat"),
            lng=data.get("lng"),
            speed=data.get("speed"),
            details=Telemetry.from_dict(block) if isinstance(block, dict) else None,
            raw=dict(data),
        )

    def to_dict(self) -> dict:
        if self.raw:
            return dict(self.raw)
        data = {
            "obj_id": self.obj_id,
            "type": self.type,
            "objective": self.objective,
            "size": self.size,
            "lat": self.lat,
            "lng": self.lng,
        }
        if self.speed is not None:
            data["speed"] = self.speed
        if self.details is not None:
            data["details"] = {
                key: getattr(self.details, key)
                for key in ("lat", "lng", "alt", "speed", "tar_lat", "tar_lng")
                if getattr(self.details, key) is not None
            }
        return data


@dataclass(frozen=True)
class DetectionEvent:
    """One reported sighting batch from a camera."""
    id: Any
    cam_id: str
    timestamp: str              # ISO 8601
    objects: tuple[DetectedObject, ...] = ()
    image_path: str = ""
    camera: Optional[Camera] = None

    @classmethod
    def from_dict(cls, data: dict) -> DetectionEvent:
        camera = data.get("camera")
        return cls(
            id=data.get("id"),
            cam_id=str(data.get("cam_id", "")),
            timestamp=str(data.get("timestamp", "")),
            objects=tuple(
                DetectedObject.from_dict(obj) for obj in (data.get("objects") or [])
            ),
            image_path=str(data.get("image_path") or ""),
            camera=Camera.from_dict(camera) if isinstance(camera, dict) else None,
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "cam_id": self.cam_id,
            "timestamp": self.timestamp,
            "image_path": self.image_path,
            "objects": [obj.to_dict() for obj in self.objects],
        }
        if self.camera is not None:
            data["camera"] = {
                "id": self.camera.id,
                "name": self.camera.name,
                "location": self.camera.location,
            }
        return data
