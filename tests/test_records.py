from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from factories import make_entry
from track_replay.errors import AcquisitionError, MalformedEntry
from track_replay.models import EVENT_BRAKE, EVENT_NONE, Entry
from track_replay.records import (
    FileTrackerSource,
    entry_from_record,
    group_entries_by_section,
    load_sections,
    parse_entries,
    section_from_record,
)

TZ = "Asia/Shanghai"


def test_group_entries_by_section_keeps_order():
    entries = [make_entry(1, section="1"), make_entry(2, section="2"), make_entry(3, section="1")]
    sections = group_entries_by_section(entries, TZ)
    assert [s.id for s in sections] == ["1", "2"]
    assert sections[0].entries == [entries[0], entries[2]]
    assert sections[1].entries == [entries[1]]
    assert sections[0].date == date(2024, 5, 1)


def test_group_entries_empty():
    assert group_entries_by_section([], TZ) == []


def test_section_date_from_first_seen_entry_in_local_time():
    late = Entry(
        timestamp=datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc),
        latitude=1.0,
        longitude=2.0,
        section_id="9",
    )
    (section,) = group_entries_by_section([late], TZ)
    # 20:00 UTC is the next day in Shanghai
    assert section.date == date(2024, 5, 2)


def test_entry_from_record():
    e = entry_from_record(
        {
            "timestamp": "2024-05-01T08:00:00Z",
            "latitude": 31.2,
            "longitude": "121.5",
            "speed": 65.5,
            "eventType": "BRAKE",
            "sectionID": 7,
        },
        TZ,
    )
    assert e.timestamp == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    assert e.position == (31.2, 121.5)
    assert e.speed == 65.5
    assert e.event_type == EVENT_BRAKE
    assert e.section_id == "7"


def test_entry_from_record_missing_position_is_kept():
    e = entry_from_record({"timestamp": 1714550400000, "latitude": None, "speed": ""}, TZ)
    assert not e.has_position
    assert e.speed == 0.0
    assert e.event_type == EVENT_NONE
    with pytest.raises(ValueError):
        _ = e.position


@pytest.mark.parametrize(
    "record",
    [
        {"latitude": 1.0, "longitude": 2.0},
        {"timestamp": "not a time", "latitude": 1.0, "longitude": 2.0},
        {"timestamp": "2024-05-01T08:00:00", "speed": -3},
        {"timestamp": 1e30, "latitude": 1.0, "longitude": 2.0},
        {"timestamp": "9" * 30, "latitude": 1.0, "longitude": 2.0},
    ],
)
def test_entry_from_record_rejects_malformed(record):
    with pytest.raises(MalformedEntry):
        entry_from_record(record, TZ)


def test_parse_entries_skips_and_counts(caplog):
    records = [
        {"timestamp": "2024-05-01T08:00:00", "latitude": 1, "longitude": 2},
        {"latitude": 1, "longitude": 2},
        {"timestamp": "2024-05-01T08:00:10", "longitude": 2},
    ]
    with caplog.at_level("WARNING"):
        entries, summary = parse_entries(records, TZ)
    assert len(entries) == 2
    assert (summary.rows_total, summary.rows_parsed, summary.rows_skipped) == (3, 2, 1)
    assert summary.rows_without_position == 1
    assert len(caplog.records) == 2


def test_section_from_record():
    section = section_from_record(
        {
            "_id": "abc",
            "date": "2024-05-03T00:00:00.000Z",
            "entries": [{"timestamp": "2024-05-03T08:00:00", "latitude": 1, "longitude": 2}],
        },
        TZ,
    )
    assert section.id == "abc"
    assert section.date == date(2024, 5, 3)
    assert len(section.entries) == 1


def test_load_sections_csv_and_json(tmp_path):
    csv_path = tmp_path / "entries.csv"
    csv_path.write_text(
        "timestamp,latitude,longitude,speed,eventType,sectionID\n"
        "2024-05-01T08:00:00,31.0,121.0,10,none,1\n"
        "2024-05-01T08:00:10,31.1,121.1,70,swerve,1\n"
        "2024-05-01T09:00:00,31.2,121.2,20,none,2\n"
        "broken,,,,,\n",
        encoding="utf-8",
    )
    sections = load_sections(csv_path, TZ)
    assert [(s.id, len(s.entries)) for s in sections] == [("1", 2), ("2", 1)]

    json_path = tmp_path / "sections.json"
    json_path.write_text(
        json.dumps([{"_id": "s1", "date": "2024-05-01", "entries": [{"timestamp": 0, "latitude": 1, "longitude": 1}]}]),
        encoding="utf-8",
    )
    (only,) = load_sections(json_path, TZ)
    assert only.id == "s1"


def test_load_sections_csv_requires_timestamp_column(tmp_path):
    p = tmp_path / "bad.csv"
    p.write_text("latitude,longitude\n1,2\n", encoding="utf-8")
    with pytest.raises(KeyError):
        load_sections(p, TZ)


def test_file_source_serves_one_tracker(tmp_path):
    p = tmp_path / "car.csv"
    p.write_text(
        "timestamp,latitude,longitude,speed,eventType,sectionID\n"
        "2024-05-01T08:00:00,31.0,121.0,10,none,1\n"
        "2024-05-03T08:00:00,31.1,121.1,70,none,2\n",
        encoding="utf-8",
    )
    src = FileTrackerSource(p, TZ)
    assert [t.name for t in src.fetch_trackers()] == ["car"]
    assert len(src.fetch_sections("car")) == 2
    hits = src.fetch_entries_in_range("car", date(2024, 5, 2), date(2024, 5, 4))
    assert [e.section_id for e in hits] == ["2"]
    (latest,) = src.fetch_latest_locations()
    assert latest.speed == 70.0
    with pytest.raises(AcquisitionError):
        src.fetch_sections("other")


def test_parse_entries_skips_out_of_range_epoch():
    records = [
        {"timestamp": 1e30, "latitude": 1, "longitude": 2},
        {"timestamp": 1714550400000, "latitude": 1, "longitude": 2},
    ]
    entries, summary = parse_entries(records, TZ)
    assert len(entries) == 1
    assert summary.rows_skipped == 1


@pytest.mark.parametrize("bad", ["nan", "inf", "-inf", float("nan")])
def test_non_finite_coordinates_count_as_missing(bad):
    e = entry_from_record({"timestamp": "2024-05-01T08:00:00", "latitude": bad, "longitude": 2.0}, TZ)
    assert e.latitude is None
    assert not e.has_position
