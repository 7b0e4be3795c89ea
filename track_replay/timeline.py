"""Playback timeline: owns the virtual clock of the selected section.

Virtual time is measured in entry indices. At multiplier 1 one entry interval
is played per real second, regardless of the real time between the two fixes.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import math
from time import monotonic
from typing import Callable, Protocol

from track_replay.config import ReplayParams
from track_replay.engine import GeometryCache, SectionGeometry
from track_replay.errors import NoSectionSelected
from track_replay.models import PlaybackState, Section

logger = logging.getLogger(__name__)

Listener = Callable[[PlaybackState], None]


class Ticker(Protocol):
    """Something that calls back with elapsed real seconds on a fixed cadence."""

    def start(self, callback: Callable[[float], None]) -> None: ...

    def stop(self) -> None: ...


class AsyncTicker:
    """Fixed-interval tick source running as an asyncio task.

    Must be started from inside a running event loop. Starting again replaces
    the previous task; a replaced or stopped task never calls back again.
    """

    def __init__(self, interval_s: float = 0.1) -> None:
        self._interval_s = interval_s
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: Callable[[float], None]) -> None:
        self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(callback))

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # Stopping from inside our own callback: the loop exits by itself.
        if task is not current:
            task.cancel()

    async def join(self) -> None:
        """Wait until the current task finishes or is cancelled."""

        task = self._task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self, callback: Callable[[float], None]) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self._interval_s)
            if self._task is not me:
                return
            callback(self._interval_s)


class ElapsedClock:
    """Real seconds since the previous reading, for hosts that rerun at will.

    A host that redraws on its own schedule (and on every user interaction)
    cannot assume each run is one tick interval. The first reading after
    reset() is 0; later readings are capped at max_step_s so a stalled host
    does not jump the marker.
    """

    def __init__(self, max_step_s: float = 1.0, clock: Callable[[], float] = monotonic) -> None:
        self._max_step_s = max_step_s
        self._clock = clock
        self._last: float | None = None

    def reset(self) -> None:
        self._last = None

    def elapsed(self) -> float:
        now = self._clock()
        last, self._last = self._last, now
        if last is None:
            return 0.0
        return min(max(now - last, 0.0), self._max_step_s)


class TimelineController:
    """Owns PlaybackState for the selected section.

    All mutation goes through the methods below; listeners registered with
    subscribe() receive a fresh snapshot after every change and re-pull the
    derived geometry from `geometry`.

    Without a ticker the owner drives time by calling tick() itself.
    """

    def __init__(self, params: ReplayParams | None = None, ticker: Ticker | None = None) -> None:
        self._params = params or ReplayParams()
        self._ticker = ticker
        self._cache = GeometryCache(self._params.overspeed_kmh)
        self._section: Section | None = None
        self._current_time = 0.0
        self._total_time = 0
        self._is_playing = False
        self._speed = self._params.min_speed
        self._listeners: list[Listener] = []
        # Bumped on every selection; ticks carrying an older value are dropped.
        self._generation = 0

    @property
    def params(self) -> ReplayParams:
        return self._params

    @property
    def section(self) -> Section | None:
        return self._section

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            current_time=self._current_time,
            total_time=self._total_time,
            is_playing=self._is_playing,
            speed_multiplier=self._speed,
            has_section=self._section is not None,
        )

    @property
    def geometry(self) -> SectionGeometry | None:
        if self._section is None:
            return None
        return self._cache.get(self._section)

    def require_section(self) -> Section:
        if self._section is None:
            raise NoSectionSelected("请先选择一个分段")
        return self._section

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener; returns a function that unregisters it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def select_section(self, section: Section | None) -> None:
        """Swap the active section and reset to (time 0, paused)."""

        self._stop_ticker()
        self._generation += 1
        self._section = section
        self._is_playing = False
        self._current_time = 0.0
        if section is None:
            self._cache.clear()
            self._total_time = 0
        else:
            geom = self._cache.get(section)
            self._total_time = geom.total_time
            if len(geom.entries) == 1:
                logger.warning("分段 %s 只有一个定位点，无法回放", section.id)
            elif not geom.entries:
                logger.warning("分段 %s 没有可用的定位数据", section.id)
            logger.debug("选择分段 %s，total_time=%s", section.id, self._total_time)
        self._notify()

    def play(self) -> None:
        if self._is_playing or not self._can_play():
            return
        if self._current_time >= self._total_time:
            # End of trip: stays paused until the user seeks back.
            return
        self._is_playing = True
        if self._ticker is not None:
            self._ticker.start(functools.partial(self.tick, generation=self._generation))
        self._notify()

    def pause(self) -> None:
        if not self._is_playing:
            return
        self._is_playing = False
        self._stop_ticker()
        self._notify()

    def toggle(self) -> None:
        if self._is_playing:
            self.pause()
        else:
            self.play()

    def seek(self, time: float) -> None:
        """Jump to virtual time; out-of-range values are clamped, NaN is ignored."""

        if math.isnan(time):
            return
        self._current_time = min(max(float(time), 0.0), float(self._total_time))
        self._notify()

    def set_speed(self, multiplier: float) -> None:
        """Set the playback multiplier, clamped to [min_speed, max_speed].

        NaN leaves the multiplier unchanged.
        """

        if math.isnan(multiplier):
            return
        p = self._params
        self._speed = min(max(float(multiplier), p.min_speed), p.max_speed)
        self._notify()

    def tick(self, dt_real_seconds: float, generation: int | None = None) -> None:
        """Advance virtual time by dt real seconds at the current multiplier."""

        if generation is not None and generation != self._generation:
            logger.debug("忽略过期计时器的 tick（generation=%s）", generation)
            return
        if not self._is_playing:
            return
        if math.isnan(dt_real_seconds) or dt_real_seconds <= 0:
            return

        new_time = self._current_time + self._speed * dt_real_seconds * self._params.units_per_second
        if new_time >= self._total_time:
            self._current_time = float(self._total_time)
            self._is_playing = False
            self._stop_ticker()
        else:
            self._current_time = new_time
        self._notify()

    def close(self) -> None:
        """Tear down: stop the ticker and drop listeners."""

        self._stop_ticker()
        self._is_playing = False
        self._generation += 1
        self._listeners.clear()

    def _can_play(self) -> bool:
        return self._section is not None and self._total_time > 0

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)
