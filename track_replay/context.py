"""Shared view state: selected tracker, its sections and the selected section.

ViewContext is the one object both the browser UI and the timeline work
against. Acquisition failures never clear what is already loaded; they only
leave a notice for the UI to show.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from track_replay.errors import AcquisitionError
from track_replay.models import DEFAULT_TZ, Entry, LatestLocation, Section, Tracker
from track_replay.records import group_entries_by_section
from track_replay.timeline import TimelineController

logger = logging.getLogger(__name__)


class TrackerSource(Protocol):
    """What the view needs from the acquisition side (see api.TrackerApiClient)."""

    def fetch_trackers(self) -> list[Tracker]: ...

    def fetch_sections(self, tracker_name: str) -> list[Section]: ...

    def fetch_entries_in_range(self, tracker_name: str, start_date: date, end_date: date) -> list[Entry]: ...

    def fetch_latest_locations(self) -> list[LatestLocation]: ...


@dataclass(slots=True)
class ViewContext:
    source: TrackerSource
    timeline: TimelineController
    tz_name: str = DEFAULT_TZ
    trackers: list[Tracker] = field(default_factory=list)
    tracker_name: str | None = None
    sections: list[Section] = field(default_factory=list)
    latest: list[LatestLocation] = field(default_factory=list)
    notice: str | None = None

    @property
    def selected_section(self) -> Section | None:
        return self.timeline.section

    def refresh_trackers(self) -> bool:
        try:
            trackers = self.source.fetch_trackers()
        except AcquisitionError as exc:
            return self._fail("获取设备列表失败", exc)
        self.trackers = trackers
        self.notice = None
        return True

    def select_tracker(self, tracker_name: str) -> bool:
        """Switch tracker and load its recent sections.

        On failure the previous tracker and sections stay in place.
        """

        try:
            sections = self.source.fetch_sections(tracker_name)
        except AcquisitionError as exc:
            return self._fail(f"获取 {tracker_name} 的分段失败", exc)
        if tracker_name != self.tracker_name:
            self.timeline.select_section(None)
        self.tracker_name = tracker_name
        self.sections = sections
        self.notice = None
        return True

    def search(self, start_date: date, end_date: date) -> bool:
        """Replace the section list with search results for the selected tracker."""

        if self.tracker_name is None:
            self.notice = "请先选择设备"
            return False
        if start_date > end_date:
            self.notice = "开始日期不能晚于结束日期。"
            return False
        try:
            entries = self.source.fetch_entries_in_range(self.tracker_name, start_date, end_date)
        except AcquisitionError as exc:
            return self._fail("搜索失败", exc)
        self.sections = group_entries_by_section(entries, self.tz_name)
        self.notice = None
        logger.info("搜索到 %s 个分段（%s ~ %s）", len(self.sections), start_date, end_date)
        return True

    def select_section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                self.timeline.select_section(section)
                return section
        self.notice = f"找不到分段：{section_id}"
        return None

    def refresh_latest(self) -> bool:
        try:
            latest = self.source.fetch_latest_locations()
        except AcquisitionError as exc:
            return self._fail("获取最新位置失败", exc)
        self.latest = latest
        return True

    def _fail(self, what: str, exc: AcquisitionError) -> bool:
        logger.warning("%s：%s", what, exc)
        self.notice = f"{what}，已保留当前数据。"
        return False
