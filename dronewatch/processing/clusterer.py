"""Zoom-adaptive greedy clustering of object positions for map markers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
from scipy.spatial.distance import cdist

from dronewatch.config import ClusteringConfig
from dronewatch.models import DetectedObject
from dronewatch.processing.geo import resolve_position, resolve_target

SINGLE = "single"
CLUSTER = "cluster"


@dataclass(frozen=True)
class MarkerDescriptor:
    """A renderable marker: one object, or a cluster of nearby objects."""
    kind: str
    lat: float
    lng: float
    objects: tuple[DetectedObject, ...]

    @property
    def object(self) -> DetectedObject:
        return self.objects[0]

    @property
    def is_cluster(self) -> bool:
        return self.kind == CLUSTER


@dataclass(frozen=True)
class TargetMarker:
    lat: float
    lng: float
    object: DetectedObject


class SpatialClusterer:
    """Groups objects whose positions fall within a zoom-dependent tolerance.

    The pass is greedy: each object joins the first existing cluster whose
    running centroid lies strictly within the tolerance, so membership
    depends on input order unless ``stable_order`` is set.
    """

    def __init__(self, config: ClusteringConfig):
        self._config = config

    def tolerance_for_zoom(self, zoom: float) -> Optional[float]:
        """Return the clustering tolerance in degrees, or None for no clustering."""
        cfg = self._config
        if zoom >= cfg.single_zoom:
            return None
        if zoom >= cfg.near_zoom:
            return cfg.near_tolerance
        if zoom >= cfg.mid_zoom:
            return cfg.mid_tolerance
        return cfg.far_tolerance

    def cluster(self, objects: Iterable[DetectedObject],
                zoom: float) -> list[MarkerDescriptor]:
        items = list(objects)
        if self._config.stable_order:
            items.sort(key=lambda obj: obj.obj_id)

        positioned = []
        for obj in items:
            pos = resolve_position(obj)
            if pos is not None:
                positioned.append((obj, pos.lat, pos.lng))

        tolerance = self.tolerance_for_zoom(zoom)
        if tolerance is None:
            return [MarkerDescriptor(SINGLE, lat, lng, (obj,))
                    for obj, lat, lng in positioned]

        centroids: list[list[float]] = []
        members: list[list[DetectedObject]] = []

        for obj, lat, lng in positioned:
            index = None
            if centroids:
                dists = cdist(np.array([[lat, lng]]), np.array(centroids))[0]
                hits = np.flatnonzero(dists < tolerance)
                if hits.size:
                    index = int(hits[0])

            if index is None:
                centroids.append([lat, lng])
                members.append([obj])
                continue

            members[index].append(obj)
            total = len(members[index])
            centroid = centroids[index]
            centroid[0] += (lat - centroid[0]) / total
            centroid[1] += (lng - centroid[1]) / total

        return [
            MarkerDescriptor(
                CLUSTER if len(group) > 1 else SINGLE,
                centroid[0], centroid[1], tuple(group),
            )
            for centroid, group in zip(centroids, members)
        ]


def target_markers(objects: Sequence[DetectedObject]) -> list[TargetMarker]:
    """Markers for the secondary target points reported in object telemetry."""
    markers = []
    for obj in objects:
        target = resolve_target(obj)
        if target is not None:
            markers.append(TargetMarker(target.lat, target.lng, obj))
    return markers
