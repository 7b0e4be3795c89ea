"""Interpolation and segmentation of a section's path.

Everything here is a pure function of (entries, current_time). Every public
function drops entries without a position first, so indices always refer to
plottable entries. Nothing in this module raises for empty or single-entry
input except `require_plottable`, which callers use when they cannot proceed
without data.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Final, Sequence

from track_replay.errors import EmptySection
from track_replay.geo import lerp_point
from track_replay.models import (
    COLOR_NORMAL,
    COLOR_OVERSPEED,
    EVENT_BRAKE,
    EVENT_SWERVE,
    OVERSPEED_KMH,
    Bounds,
    Entry,
    EventMark,
    EventMarker,
    Section,
    Segment,
)

# Timeline mark style per event kind.
EVENT_STYLES: Final[dict[str, str]] = {EVENT_SWERVE: "orange", EVENT_BRAKE: "yellow"}


def plottable(entries: Sequence[Entry]) -> list[Entry]:
    """Entries that carry both coordinates, in original order."""

    return [e for e in entries if e.has_position]


def require_plottable(entries: Sequence[Entry]) -> list[Entry]:
    """Like plottable(), but raise EmptySection when nothing is left."""

    usable = plottable(entries)
    if not usable:
        raise EmptySection("该分段没有可用的定位数据")
    return usable


def _bracket(count: int, current_time: float) -> tuple[int, int, float]:
    t = min(max(current_time, 0.0), float(count - 1))
    i = int(math.floor(t))
    j = min(i + 1, count - 1)
    return i, j, t - i


def _position_at(usable: Sequence[Entry], current_time: float) -> tuple[float, float] | None:
    if not usable:
        return None
    i, j, frac = _bracket(len(usable), current_time)
    if i == j:
        return usable[i].position
    return lerp_point(usable[i].position, usable[j].position, frac)


def _entry_at(usable: Sequence[Entry], current_time: float) -> Entry | None:
    if not usable:
        return None
    i, _, _ = _bracket(len(usable), current_time)
    return usable[i]


def interpolated_position(entries: Sequence[Entry], current_time: float) -> tuple[float, float] | None:
    """Marker position at virtual time current_time.

    Args:
        entries: Section entries; those without a position are skipped.
        current_time: Virtual time in entry indices; clamped to the valid range.

    Returns:
        (lat, lon), or None when there is no entry at all.

    At an integer time k the result is exactly entries[k].position.
    """

    return _position_at(plottable(entries), current_time)


def current_entry(entries: Sequence[Entry], current_time: float) -> Entry | None:
    """Entry the marker has most recently passed (floor of current_time)."""

    return _entry_at(plottable(entries), current_time)


def build_segments(entries: Sequence[Entry], overspeed_kmh: float = OVERSPEED_KMH) -> list[Segment]:
    """One coloured segment per adjacent pair of entries.

    A segment is COLOR_OVERSPEED iff the entry it starts from is faster than
    overspeed_kmh.
    """

    usable = plottable(entries)
    segments: list[Segment] = []
    for k in range(len(usable) - 1):
        cur = usable[k]
        nxt = usable[k + 1]
        segments.append(
            Segment(
                index=k,
                start=cur.position,
                end=nxt.position,
                color=COLOR_OVERSPEED if cur.speed > overspeed_kmh else COLOR_NORMAL,
                tooltip_time=cur.timestamp,
                tooltip_speed=cur.speed,
            )
        )
    return segments


def build_event_markers(entries: Sequence[Entry]) -> list[EventMarker]:
    return [
        EventMarker(index=k, position=e.position, kind=e.event_type, timestamp=e.timestamp, speed=e.speed)
        for k, e in enumerate(plottable(entries))
        if e.is_incident
    ]


def build_event_marks(entries: Sequence[Entry]) -> dict[int, EventMark]:
    """Sparse index -> mark map for annotating the timeline control."""

    return {k: EventMark(style=EVENT_STYLES[e.event_type]) for k, e in enumerate(plottable(entries)) if e.is_incident}


def bounds(entries: Sequence[Entry]) -> Bounds | None:
    usable = plottable(entries)
    if not usable:
        return None
    lats = [e.position[0] for e in usable]
    lons = [e.position[1] for e in usable]
    return Bounds(south=min(lats), west=min(lons), north=max(lats), east=max(lons))


@dataclass(frozen=True, slots=True)
class Frame:
    """What the rendering layer needs for one tick."""

    position: tuple[float, float] | None
    entry: Entry | None


@dataclass(slots=True)
class SectionGeometry:
    """Per-section derivation, computed once and reused on every tick.

    Build it with `SectionGeometry.of(section)`; only `frame()` depends on the
    current time.
    """

    section: Section
    overspeed_kmh: float
    entries: list[Entry] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)
    event_markers: list[EventMarker] = field(default_factory=list)
    event_marks: dict[int, EventMark] = field(default_factory=dict)
    bounds: Bounds | None = None

    @classmethod
    def of(cls, section: Section, overspeed_kmh: float = OVERSPEED_KMH) -> SectionGeometry:
        usable = plottable(section.entries)
        return cls(
            section=section,
            overspeed_kmh=overspeed_kmh,
            entries=usable,
            segments=build_segments(usable, overspeed_kmh),
            event_markers=build_event_markers(usable),
            event_marks=build_event_marks(usable),
            bounds=bounds(usable),
        )

    @property
    def total_time(self) -> int:
        return max(0, len(self.entries) - 1)

    def frame(self, current_time: float) -> Frame:
        return Frame(
            position=_position_at(self.entries, current_time),
            entry=_entry_at(self.entries, current_time),
        )


class GeometryCache:
    """Memoises SectionGeometry by section identity.

    Holds only the most recent section; selecting another one replaces it.
    """

    def __init__(self, overspeed_kmh: float = OVERSPEED_KMH) -> None:
        self._overspeed_kmh = overspeed_kmh
        self._geometry: SectionGeometry | None = None
        self.builds = 0

    def get(self, section: Section) -> SectionGeometry:
        geom = self._geometry
        if geom is None or geom.section is not section:
            geom = SectionGeometry.of(section, self._overspeed_kmh)
            self._geometry = geom
            self.builds += 1
        return geom

    def clear(self) -> None:
        self._geometry = None
