"""Inspect a section and export a readable entry list."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable

from track_replay.engine import SectionGeometry
from track_replay.geo import path_length_m
from track_replay.models import COLOR_OVERSPEED, EVENT_BRAKE, EVENT_SWERVE, OVERSPEED_KMH, Entry, Section
from track_replay.timeutils import format_local


@dataclass(frozen=True, slots=True)
class SectionSummary:
    """High-level section statistics."""

    section_id: str
    entries_total: int
    entries_plottable: int
    start: datetime | None
    end: datetime | None
    distance_m: float
    max_speed: float
    overspeed_segments: int
    segments: int
    swerves: int
    brakes: int

    @property
    def duration_seconds(self) -> float:
        if self.start is None or self.end is None:
            return 0.0
        return max(0.0, (self.end - self.start).total_seconds())


def summarize_section(section: Section, overspeed_kmh: float = OVERSPEED_KMH) -> SectionSummary:
    geom = SectionGeometry.of(section, overspeed_kmh)
    usable = geom.entries
    kinds = [m.kind for m in geom.event_markers]
    return SectionSummary(
        section_id=section.id,
        entries_total=len(section.entries),
        entries_plottable=len(usable),
        start=usable[0].timestamp if usable else None,
        end=usable[-1].timestamp if usable else None,
        distance_m=path_length_m([e.position for e in usable]),
        max_speed=max((e.speed for e in usable), default=0.0),
        overspeed_segments=sum(1 for s in geom.segments if s.color == COLOR_OVERSPEED),
        segments=len(geom.segments),
        swerves=kinds.count(EVENT_SWERVE),
        brakes=kinds.count(EVENT_BRAKE),
    )


def export_readable_csv(entries: Iterable[Entry], out_path: str | Path, tz_name: str) -> None:
    """Export entries to a human-readable CSV.

    Output columns:
        - time_local: local time
        - section_id, latitude, longitude, speed_kmh, event_type
    """

    p = Path(out_path)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=["time_local", "section_id", "latitude", "longitude", "speed_kmh", "event_type"],
        )
        w.writeheader()
        for e in entries:
            w.writerow(
                {
                    "time_local": format_local(e.timestamp, tz_name),
                    "section_id": e.section_id,
                    "latitude": "" if e.latitude is None else e.latitude,
                    "longitude": "" if e.longitude is None else e.longitude,
                    "speed_kmh": f"{e.speed:.2f}",
                    "event_type": e.event_type,
                }
            )
