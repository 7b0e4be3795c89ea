"""Turn raw tracker records (API JSON or CSV export) into entries and sections."""

from __future__ import annotations

import csv
import json
import logging
import math
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from track_replay.errors import AcquisitionError, MalformedEntry
from track_replay.models import (
    DEFAULT_TZ,
    EVENT_NONE,
    EVENT_TYPES,
    Entry,
    LatestLocation,
    Section,
    Tracker,
)
from track_replay.timeutils import local_day, parse_day, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParseSummary:
    """Quick summary of record parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    rows_without_position: int


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # "nan" and "inf" parse as floats but are not usable values.
    return number if math.isfinite(number) else None


def _event_type(value: Any) -> str:
    s = str(value or EVENT_NONE).strip().lower()
    if s in EVENT_TYPES:
        return s
    logger.debug("未知事件类型 %r，按 none 处理", value)
    return EVENT_NONE


def entry_from_record(record: Mapping[str, Any], tz_name: str = DEFAULT_TZ) -> Entry:
    """Build an Entry from one raw record.

    Field names follow the tracker service: timestamp, latitude, longitude,
    speed, eventType, sectionID.

    Missing or unreadable coordinates are kept as None; such an entry stays in
    its section but is left out of every map derivation.

    Raises:
        MalformedEntry: timestamp missing/unreadable, or speed invalid.
    """

    try:
        timestamp = parse_timestamp(record["timestamp"], tz_name)
    except KeyError as exc:
        raise MalformedEntry(f"记录缺少 timestamp 字段：{dict(record)!r}") from exc
    except ValueError as exc:
        raise MalformedEntry(str(exc)) from exc

    speed = _optional_float(record.get("speed"))
    if speed is None:
        speed = 0.0
    elif speed < 0:
        raise MalformedEntry(f"速度不能为负：{record.get('speed')!r}")

    return Entry(
        timestamp=timestamp,
        latitude=_optional_float(record.get("latitude")),
        longitude=_optional_float(record.get("longitude")),
        speed=speed,
        event_type=_event_type(record.get("eventType")),
        section_id=str(record.get("sectionID", "") or ""),
    )


def parse_entries(
    records: Iterable[Mapping[str, Any]],
    tz_name: str = DEFAULT_TZ,
) -> tuple[list[Entry], ParseSummary]:
    """Parse raw records, skipping malformed ones.

    Returns:
        (entries, summary)
    """

    rows_total = 0
    parsed: list[Entry] = []
    for record in records:
        rows_total += 1
        try:
            parsed.append(entry_from_record(record, tz_name))
        except MalformedEntry as exc:
            logger.debug("跳过损坏记录：%s", exc)
            continue

    summary = ParseSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        rows_without_position=sum(1 for e in parsed if not e.has_position),
    )
    if summary.rows_skipped > 0:
        logger.warning("有 %s 条记录解析失败已跳过", summary.rows_skipped)
    if summary.rows_without_position > 0:
        logger.warning("有 %s 条记录缺少经纬度，不参与轨迹绘制", summary.rows_without_position)
    return parsed, summary


def section_from_record(record: Mapping[str, Any], tz_name: str = DEFAULT_TZ) -> Section:
    """Build a pre-grouped Section ({_id, date, entries}) as returned by the service."""

    entries, _ = parse_entries(record.get("entries") or (), tz_name)
    raw_date = record.get("date")
    day = None
    if raw_date:
        try:
            day = parse_day(str(raw_date)[:10])
        except ValueError:
            logger.debug("无法解析分段日期 %r", raw_date)
    if day is None and entries:
        day = local_day(entries[0].timestamp, tz_name)
    section_id = record.get("_id", record.get("id", ""))
    return Section(id=str(section_id), date=day, entries=entries)


def tracker_from_record(record: Mapping[str, Any]) -> Tracker:
    name = str(record.get("name", "") or "")
    return Tracker(id=str(record.get("_id", record.get("id", name))), name=name)


def latest_location_from_record(record: Mapping[str, Any], tz_name: str = DEFAULT_TZ) -> LatestLocation:
    """Build a LatestLocation; raises MalformedEntry without a usable timestamp."""

    try:
        timestamp = parse_timestamp(record["timestamp"], tz_name)
    except (KeyError, ValueError) as exc:
        raise MalformedEntry(f"最新位置缺少有效时间：{dict(record)!r}") from exc
    name = str(record.get("trackerName", "") or "")
    return LatestLocation(
        tracker_id=str(record.get("trackerId", record.get("_id", name))),
        tracker_name=name,
        latitude=_optional_float(record.get("latitude")),
        longitude=_optional_float(record.get("longitude")),
        timestamp=timestamp,
        speed=_optional_float(record.get("speed")) or 0.0,
    )


def group_entries_by_section(entries: Sequence[Entry], tz_name: str = DEFAULT_TZ) -> list[Section]:
    """Partition time-ordered entries into Sections by section_id.

    Relative order of entries is preserved, each section is dated by its first
    seen entry, and sections come out in order of first appearance.
    """

    by_id: dict[str, Section] = {}
    for entry in entries:
        section = by_id.get(entry.section_id)
        if section is None:
            section = Section(
                id=entry.section_id,
                date=local_day(entry.timestamp, tz_name),
                entries=[],
            )
            by_id[entry.section_id] = section
        section.entries.append(entry)
    return list(by_id.values())


def load_entries_csv(csv_path: str | Path, tz_name: str = DEFAULT_TZ) -> tuple[list[Entry], ParseSummary]:
    """Load entries from a CSV export.

    Notes:
        The export uses the service's field names as columns:
          - timestamp: ISO 8601 or epoch milliseconds
          - latitude/longitude: decimal degrees
          - speed (km/h), eventType, sectionID
    """

    p = Path(csv_path)
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            return [], ParseSummary(0, 0, 0, 0)
        if "timestamp" not in reader.fieldnames:
            raise KeyError(f"CSV缺少必要字段：'timestamp'. 实际字段：{reader.fieldnames}")
        return parse_entries(reader, tz_name)


def load_sections(path: str | Path, tz_name: str = DEFAULT_TZ) -> list[Section]:
    """Load sections from a CSV or JSON file.

    JSON may hold either a list of sections ({_id, date, entries}) or a flat
    list of entries; flat entries and CSV rows are grouped by sectionID.
    """

    p = Path(path)
    if p.suffix.lower() != ".json":
        entries, _ = load_entries_csv(p, tz_name)
        return group_entries_by_section(entries, tz_name)

    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"JSON顶层必须是数组：{path}")
    if data and isinstance(data[0], Mapping) and "entries" in data[0]:
        return [section_from_record(rec, tz_name) for rec in data]
    entries, _ = parse_entries(data, tz_name)
    return group_entries_by_section(entries, tz_name)


class FileTrackerSource:
    """Serve one CSV/JSON file as if it were a single tracker of the service."""

    def __init__(self, path: str | Path, tz_name: str = DEFAULT_TZ) -> None:
        self._path = Path(path)
        self._tz_name = tz_name

    @property
    def tracker_name(self) -> str:
        return self._path.stem

    def fetch_trackers(self) -> list[Tracker]:
        return [Tracker(id=self.tracker_name, name=self.tracker_name)]

    def fetch_sections(self, tracker_name: str) -> list[Section]:
        return self._load(tracker_name)

    def fetch_entries_in_range(self, tracker_name: str, start_date: date, end_date: date) -> list[Entry]:
        """Entries whose local date falls in [start_date, end_date]."""

        entries = [e for s in self._load(tracker_name) for e in s.entries]
        return [e for e in entries if start_date <= local_day(e.timestamp, self._tz_name) <= end_date]

    def fetch_latest_locations(self) -> list[LatestLocation]:
        entries = [e for s in self._load(self.tracker_name) for e in s.entries]
        if not entries:
            return []
        last = max(entries, key=lambda e: e.timestamp)
        return [
            LatestLocation(
                tracker_id=self.tracker_name,
                tracker_name=self.tracker_name,
                latitude=last.latitude,
                longitude=last.longitude,
                timestamp=last.timestamp,
                speed=last.speed,
            )
        ]

    def _load(self, tracker_name: str) -> list[Section]:
        if tracker_name != self.tracker_name:
            raise AcquisitionError(f"本地文件只包含设备 {self.tracker_name!r}")
        try:
            return load_sections(self._path, self._tz_name)
        except (OSError, KeyError, ValueError) as exc:
            raise AcquisitionError(f"读取文件失败：{self._path}（{exc}）") from exc
