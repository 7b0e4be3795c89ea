"""Latest-location overview: which trackers are live."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final, Iterable

from track_replay.models import LatestLocation
from track_replay.timeutils import minutes_between

STATUS_LIVE: Final[str] = "live"
STATUS_INACTIVE: Final[str] = "inactive"


def status_of(timestamp: datetime, now: datetime, live_window_minutes: float = 5.0) -> str:
    """Live if the fix is at most live_window_minutes old."""

    return STATUS_LIVE if minutes_between(timestamp, now) <= live_window_minutes else STATUS_INACTIVE


@dataclass(frozen=True, slots=True)
class OverviewMarker:
    tracker_name: str
    position: tuple[float, float]
    status: str
    timestamp: datetime
    speed: float


def overview_markers(
    locations: Iterable[LatestLocation],
    now: datetime | None = None,
    live_window_minutes: float = 5.0,
) -> list[OverviewMarker]:
    """Markers for trackers with a usable position; others are skipped."""

    now = now or datetime.now(UTC)
    out: list[OverviewMarker] = []
    for loc in locations:
        if loc.latitude is None or loc.longitude is None:
            continue
        out.append(
            OverviewMarker(
                tracker_name=loc.tracker_name,
                position=(loc.latitude, loc.longitude),
                status=status_of(loc.timestamp, now, live_window_minutes),
                timestamp=loc.timestamp,
                speed=loc.speed,
            )
        )
    return out
