from __future__ import annotations

import math

import pytest

from factories import make_entry, make_section
from track_replay.engine import (
    GeometryCache,
    SectionGeometry,
    bounds,
    build_event_marks,
    build_event_markers,
    build_segments,
    current_entry,
    interpolated_position,
    plottable,
    require_plottable,
)
from track_replay.errors import EmptySection
from track_replay.models import COLOR_NORMAL, COLOR_OVERSPEED, EVENT_BRAKE, EVENT_SWERVE, Entry, Section


def test_exact_frames_return_entry_positions():
    entries = [make_entry(i, lat=30.1 + 0.0137 * i, lon=120.3 - 0.0071 * i) for i in range(7)]
    for k, e in enumerate(entries):
        assert interpolated_position(entries, float(k)) == e.position


def test_intermediate_time_lies_on_bracketing_segment():
    entries = [make_entry(0, lat=30.0, lon=120.0), make_entry(1, lat=31.0, lon=122.0), make_entry(2)]
    for t in (0.1, 0.25, 0.5, 0.9):
        lat, lon = interpolated_position(entries, t)
        assert lat == pytest.approx(30.0 + t)
        assert lon == pytest.approx(120.0 + 2 * t)
        # collinear with the two fixes
        assert (lat - 30.0) * 2.0 == pytest.approx(lon - 120.0)


def test_final_index_has_no_next_entry():
    entries = [make_entry(i) for i in range(3)]
    assert interpolated_position(entries, 2.0) == entries[2].position
    assert current_entry(entries, 2.0) is entries[2]


def test_time_beyond_range_is_clamped():
    entries = [make_entry(i) for i in range(3)]
    assert interpolated_position(entries, 9.5) == entries[2].position
    assert interpolated_position(entries, -1.0) == entries[0].position


def test_single_and_empty_entries():
    one = [make_entry(0)]
    assert interpolated_position(one, 0.0) == one[0].position
    assert interpolated_position(one, 3.7) == one[0].position
    assert interpolated_position([], 0.0) is None
    assert current_entry([], 1.0) is None
    assert build_segments(one) == []
    assert build_segments([]) == []
    assert bounds([]) is None


def test_segments_colored_by_originating_entry():
    section = make_section([40, 70, 55])
    segs = build_segments(section.entries, overspeed_kmh=60)
    assert len(segs) == 2
    assert [s.color for s in segs] == [COLOR_NORMAL, COLOR_OVERSPEED]
    assert segs[1].tooltip_speed == 70
    assert segs[1].tooltip_time == section.entries[1].timestamp
    assert segs[0].start == section.entries[0].position
    assert segs[0].end == section.entries[1].position


def test_segment_count_and_threshold_is_configurable():
    section = make_section([10, 20, 30, 40, 50, 60])
    segs = build_segments(section.entries, overspeed_kmh=25)
    assert len(segs) == 5
    assert [s.index for s in segs] == [0, 1, 2, 3, 4]
    assert [s.color for s in segs] == [COLOR_NORMAL, COLOR_NORMAL, COLOR_OVERSPEED, COLOR_OVERSPEED, COLOR_OVERSPEED]
    # exactly at the threshold is not overspeed
    assert build_segments(make_section([60, 60]).entries)[0].color == COLOR_NORMAL


def test_event_markers_and_marks():
    entries = [
        make_entry(0),
        make_entry(1, event=EVENT_SWERVE, speed=42.0),
        make_entry(2),
        make_entry(3, event=EVENT_BRAKE),
    ]
    markers = build_event_markers(entries)
    assert [(m.index, m.kind) for m in markers] == [(1, EVENT_SWERVE), (3, EVENT_BRAKE)]
    assert markers[0].speed == 42.0
    assert markers[0].position == entries[1].position

    marks = build_event_marks(entries)
    assert sorted(marks) == [1, 3]
    assert marks[1].style == "orange"
    assert marks[3].style == "yellow"
    assert marks[1].label == "|"


def test_single_entry_section_still_has_event_marker():
    entries = [make_entry(0, event=EVENT_BRAKE)]
    assert build_segments(entries) == []
    assert len(build_event_markers(entries)) == 1


def test_malformed_entries_are_left_out():
    entries = [make_entry(0), Entry(timestamp=make_entry(1).timestamp, latitude=None, longitude=120.0), make_entry(2)]
    usable = plottable(entries)
    assert usable == [entries[0], entries[2]]
    geom = SectionGeometry.of(Section(id="x", date=None, entries=entries))
    assert geom.total_time == 1
    assert len(geom.segments) == 1
    assert geom.frame(1.0).position == entries[2].position


def test_require_plottable_raises_on_empty():
    with pytest.raises(EmptySection):
        require_plottable([])
    with pytest.raises(EmptySection):
        require_plottable([Entry(timestamp=make_entry(0).timestamp, latitude=None, longitude=None)])


def test_bounds_cover_all_entries():
    entries = [make_entry(0, lat=1.0, lon=5.0), make_entry(1, lat=3.0, lon=2.0)]
    b = bounds(entries)
    assert (b.south, b.west, b.north, b.east) == (1.0, 2.0, 3.0, 5.0)
    assert b.center == (2.0, 3.5)


def test_geometry_cache_rebuilds_only_on_new_section():
    cache = GeometryCache(overspeed_kmh=60)
    a = make_section([10, 70, 10])
    b = make_section([10, 70, 10])
    g1 = cache.get(a)
    assert cache.get(a) is g1
    assert cache.builds == 1
    g2 = cache.get(b)
    assert g2 is not g1
    assert cache.builds == 2


def test_frame_tracks_floor_entry():
    geom = SectionGeometry.of(make_section([10, 20, 30]))
    frame = geom.frame(1.5)
    assert frame.entry is geom.entries[1]
    assert not math.isnan(frame.position[0])


def test_entries_without_position_are_skipped_by_every_derivation():
    ok0 = make_entry(0, lat=30.0, lon=120.0, speed=70, event=EVENT_SWERVE)
    hole = Entry(timestamp=ok0.timestamp, latitude=None, longitude=None, speed=90, event_type=EVENT_BRAKE)
    ok1 = make_entry(2, lat=31.0, lon=121.0, speed=10, event=EVENT_BRAKE)
    raw = [ok0, hole, ok1]

    segs = build_segments(raw, overspeed_kmh=60)
    assert [(s.start, s.end, s.color) for s in segs] == [(ok0.position, ok1.position, COLOR_OVERSPEED)]
    # indices refer to the plottable list, matching SectionGeometry
    assert [(m.index, m.kind) for m in build_event_markers(raw)] == [(0, EVENT_SWERVE), (1, EVENT_BRAKE)]
    assert sorted(build_event_marks(raw)) == [0, 1]
    assert interpolated_position(raw, 0.5) == pytest.approx((30.5, 120.5))
    assert current_entry(raw, 1.0) is ok1
    assert bounds(raw) == bounds([ok0, ok1])
    assert interpolated_position([hole], 0.0) is None
    assert build_segments([hole, hole]) == []
