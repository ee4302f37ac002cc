"""Tests for the per-object registry and history filtering."""

from __future__ import annotations

from datetime import date

import pytest

from dronewatch.processing.aggregator import (
    build_registry,
    filter_events,
    latest_objects,
    parse_timestamp,
)
from tests.conftest import make_event, make_object


class TestBuildRegistry:
    def test_one_entry_per_object(self):
        events = [
            make_event([make_object("obj_001", 14.0, 101.0),
                        make_object("obj_002", 14.1, 101.1)], event_id=1),
            make_event([make_object("obj_001", 14.2, 101.2)], event_id=2),
        ]
        registry = build_registry(events)
        assert set(registry) == {"obj_001", "obj_002"}

    def test_last_in_list_wins_over_newer_timestamp(self):
        """The entry comes from the last event in list order, not the newest."""
        newer = make_event([make_object("obj_001", 14.5, 101.5)],
                           timestamp="2025-01-01T12:00:00Z", event_id=2)
        older = make_event([make_object("obj_001", 14.0, 101.0)],
                           timestamp="2025-01-01T08:00:00Z", event_id=1)
        registry = build_registry([newer, older])

        entry = registry["obj_001"]
        assert entry.last_seen == "2025-01-01T08:00:00Z"
        assert entry.object.lat == 14.0

    def test_timestamp_policy_keeps_newest(self):
        newer = make_event([make_object("obj_001", 14.5, 101.5)],
                           timestamp="2025-01-01T12:00:00Z", event_id=2)
        older = make_event([make_object("obj_001", 14.0, 101.0)],
                           timestamp="2025-01-01T08:00:00Z", event_id=1)
        registry = build_registry([newer, older], policy="timestamp")
        assert registry["obj_001"].last_seen == "2025-01-01T12:00:00Z"

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            build_registry([], policy="max")

    def test_objects_without_position_are_kept(self):
        events = [make_event([make_object("obj_001", lat="14.3")])]
        registry = build_registry(events)
        assert "obj_001" in registry

    def test_empty_input(self):
        assert build_registry([]) == {}

    def test_recomputed_registry_drops_absent_objects(self):
        first = [make_event([make_object("a", 1, 1), make_object("b", 2, 2)])]
        second = [make_event([make_object("a", 1, 1)])]
        assert set(build_registry(first)) == {"a", "b"}
        assert set(build_registry(second)) == {"a"}


class TestLatestObjects:
    def test_sorted_newest_first(self):
        events = [
            make_event([make_object("a", 1, 1)], timestamp="2025-01-01T09:00:00Z"),
            make_event([make_object("b", 1, 1)], timestamp="2025-01-01T11:00:00Z"),
            make_event([make_object("c", 1, 1)], timestamp="2025-01-01T10:00:00+00:00"),
        ]
        ordered = latest_objects(build_registry(events))
        assert [e.object.obj_id for e in ordered] == ["b", "c", "a"]

    def test_unparseable_timestamps_sort_last(self):
        events = [
            make_event([make_object("a", 1, 1)], timestamp="yesterday"),
            make_event([make_object("b", 1, 1)], timestamp="2025-01-01T11:00:00Z"),
        ]
        ordered = latest_objects(build_registry(events))
        assert [e.object.obj_id for e in ordered] == ["b", "a"]


class TestFilterEvents:
    def _events(self):
        return [
            make_event([], timestamp="2025-01-01T10:00:00Z", event_id=1),
            make_event([], timestamp="2025-01-03T23:59:00Z", event_id=3),
            make_event([], timestamp="2025-01-02T00:00:00Z", event_id=2),
        ]

    def test_no_bounds_sorts_newest_first(self):
        assert [e.id for e in filter_events(self._events())] == [3, 2, 1]

    def test_bounds_are_whole_days(self):
        kept = filter_events(self._events(), start=date(2025, 1, 2), end=date(2025, 1, 3))
        assert [e.id for e in kept] == [3, 2]

    def test_end_only(self):
        kept = filter_events(self._events(), end=date(2025, 1, 1))
        assert [e.id for e in kept] == [1]


class TestParseTimestamp:
    def test_zulu_suffix(self):
        assert parse_timestamp("2025-01-01T10:00:00Z").utcoffset().total_seconds() == 0

    def test_invalid(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("") is None
