"""Tunable parameters for playback and derivation."""

from __future__ import annotations

from dataclasses import dataclass

from track_replay.models import DEFAULT_TZ, OVERSPEED_KMH


@dataclass(frozen=True, slots=True)
class ReplayParams:
    """Parameters controlling playback and geometry derivation."""

    tz_name: str = DEFAULT_TZ
    overspeed_kmh: float = OVERSPEED_KMH
    # Wall-clock cadence of the ticker.
    tick_interval_s: float = 0.1
    # Virtual time (entry intervals) advanced per real second at multiplier 1.
    units_per_second: float = 1.0
    min_speed: float = 1.0
    max_speed: float = 100.0
    # Overview: a tracker counts as live if its last fix is at most this old.
    live_window_minutes: float = 5.0

    def __post_init__(self) -> None:
        if self.tick_interval_s <= 0:
            raise ValueError(f"tick_interval_s 必须大于0：{self.tick_interval_s!r}")
        if self.units_per_second <= 0:
            raise ValueError(f"units_per_second 必须大于0：{self.units_per_second!r}")
        if self.min_speed < 1.0 or self.max_speed < self.min_speed:
            raise ValueError(f"无效倍速范围：[{self.min_speed}, {self.max_speed}]")
