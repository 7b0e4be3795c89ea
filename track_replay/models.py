"""Data models for tracker entries, sections and playback geometry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Final


EVENT_NONE: Final[str] = "none"
EVENT_SWERVE: Final[str] = "swerve"
EVENT_BRAKE: Final[str] = "brake"
EVENT_TYPES: Final[frozenset[str]] = frozenset({EVENT_NONE, EVENT_SWERVE, EVENT_BRAKE})
# Event kinds that become map markers and timeline marks.
INCIDENT_TYPES: Final[frozenset[str]] = frozenset({EVENT_SWERVE, EVENT_BRAKE})

COLOR_NORMAL: Final[str] = "normal"
COLOR_OVERSPEED: Final[str] = "overspeed"

# Speed above which a segment is drawn as overspeed (km/h).
OVERSPEED_KMH: Final[float] = 60.0

DEFAULT_TZ: Final[str] = "Asia/Shanghai"


@dataclass(frozen=True, slots=True)
class Entry:
    """A single recorded GPS fix.

    Attributes:
        timestamp: Timezone-aware time of the fix.
        latitude: Latitude in decimal degrees, or None when the record lacked it.
        longitude: Longitude in decimal degrees, or None when the record lacked it.
        speed: Speed in km/h (non-negative).
        event_type: One of EVENT_TYPES.
        section_id: Identifier of the trip this fix belongs to.
    """

    timestamp: datetime
    latitude: float | None
    longitude: float | None
    speed: float = 0.0
    event_type: str = EVENT_NONE
    section_id: str = ""

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def position(self) -> tuple[float, float]:
        """(lat, lon). Only valid when has_position is True."""

        if self.latitude is None or self.longitude is None:
            raise ValueError(f"该记录缺少经纬度：{self.timestamp.isoformat()}")
        return (self.latitude, self.longitude)

    @property
    def is_incident(self) -> bool:
        return self.event_type in INCIDENT_TYPES


@dataclass(eq=False, slots=True)
class Section:
    """One contiguous recorded trip.

    Sections compare by identity on purpose: derived geometry is memoised per
    Section object, and a re-fetched section is a new object.
    """

    id: str
    date: date | None
    entries: list[Entry] = field(default_factory=list)

    @property
    def label(self) -> str:
        day = self.date.isoformat() if self.date is not None else "?"
        return f"Section {self.id} - {day}"


@dataclass(frozen=True, slots=True)
class Tracker:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class LatestLocation:
    """Most recent fix of a tracker, as shown on the overview map."""

    tracker_id: str
    tracker_name: str
    latitude: float | None
    longitude: float | None
    timestamp: datetime
    speed: float = 0.0


@dataclass(frozen=True, slots=True)
class PlaybackState:
    """Snapshot of the timeline.

    current_time is measured in entry indices (virtual time).
    """

    current_time: float = 0.0
    total_time: int = 0
    is_playing: bool = False
    speed_multiplier: float = 1.0
    has_section: bool = False


@dataclass(frozen=True, slots=True)
class Segment:
    """Path piece between two adjacent entries, coloured by the first one."""

    index: int
    start: tuple[float, float]
    end: tuple[float, float]
    color: str
    tooltip_time: datetime
    tooltip_speed: float


@dataclass(frozen=True, slots=True)
class EventMarker:
    index: int
    position: tuple[float, float]
    kind: str
    timestamp: datetime
    speed: float


@dataclass(frozen=True, slots=True)
class EventMark:
    """Timeline annotation for one event index."""

    style: str
    label: str = "|"


@dataclass(frozen=True, slots=True)
class Bounds:
    """Bounding box (south-west, north-east) for fitting the map view."""

    south: float
    west: float
    north: float
    east: float

    @property
    def center(self) -> tuple[float, float]:
        return ((self.south + self.north) / 2.0, (self.west + self.east) / 2.0)
