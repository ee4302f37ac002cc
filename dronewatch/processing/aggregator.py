"""Per-object registry of the latest known state across a feed's events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional, Sequence

from dronewatch.models import DetectedObject, DetectionEvent

POLICY_RECEIVED = "received"
POLICY_TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class LatestObjectEntry:
    object: DetectedObject
    last_seen: str


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp. Naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_registry(events: Iterable[DetectionEvent],
                   policy: str = POLICY_RECEIVED) -> dict[str, LatestObjectEntry]:
    """Map each obj_id to its latest entry.

    With the ``received`` policy the entry comes from the last event in list
    order that contains the object, regardless of timestamps. The
    ``timestamp`` policy keeps the entry with the greatest parseable
    timestamp instead; ties go to the later list position.
    """
    if policy not in (POLICY_RECEIVED, POLICY_TIMESTAMP):
        raise ValueError(f"Unknown registry policy: {policy}")

    registry: dict[str, LatestObjectEntry] = {}
    seen_at: dict[str, Optional[datetime]] = {}

    for event in events:
        stamp = parse_timestamp(event.timestamp) if policy == POLICY_TIMESTAMP else None
        for obj in event.objects:
            if policy == POLICY_TIMESTAMP and obj.obj_id in registry:
                current = seen_at[obj.obj_id]
                if current is not None and (stamp is None or stamp < current):
                    continue
            registry[obj.obj_id] = LatestObjectEntry(obj, event.timestamp)
            seen_at[obj.obj_id] = stamp

    return registry


def _newest_first_key(timestamp: str) -> tuple[int, float]:
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return (1, 0.0)
    return (0, -parsed.timestamp())


def latest_objects(registry: dict[str, LatestObjectEntry]) -> list[LatestObjectEntry]:
    """Registry entries ordered by last_seen, newest first."""
    return sorted(registry.values(), key=lambda e: _newest_first_key(e.last_seen))


def filter_events(events: Sequence[DetectionEvent],
                  start: Optional[date] = None,
                  end: Optional[date] = None) -> list[DetectionEvent]:
    """Events between the start of ``start`` and the end of ``end``, newest first.

    Events with unparseable timestamps are kept only when no bound is set.
    """
    start_at = (datetime.combine(start, time.min, tzinfo=timezone.utc)
                if start is not None else None)
    end_at = (datetime.combine(end, time.max, tzinfo=timezone.utc)
              if end is not None else None)

    kept = []
    for event in events:
        stamp = parse_timestamp(event.timestamp)
        if stamp is None:
            if start_at is None and end_at is None:
                kept.append(event)
            continue
        if start_at is not None and stamp < start_at:
            continue
        if end_at is not None and stamp > end_at:
            continue
        kept.append(event)

    return sorted(kept, key=lambda e: _newest_first_key(e.timestamp))
