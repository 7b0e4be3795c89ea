from __future__ import annotations

from datetime import date

import pytest

from factories import make_entry, make_section
from track_replay.context import ViewContext
from track_replay.errors import AcquisitionError
from track_replay.models import Tracker
from track_replay.timeline import TimelineController


class StubSource:
    def __init__(self) -> None:
        self.fail = False
        self.sections = {"car": [make_section([10, 20, 30], "a"), make_section([10, 80], "b")]}

    def _check(self) -> None:
        if self.fail:
            raise AcquisitionError("offline")

    def fetch_trackers(self):
        self._check()
        return [Tracker(id="1", name="car"), Tracker(id="2", name="bike")]

    def fetch_sections(self, tracker_name):
        self._check()
        return self.sections.get(tracker_name, [])

    def fetch_entries_in_range(self, tracker_name, start_date, end_date):
        self._check()
        return [make_entry(0, section="x"), make_entry(1, section="y"), make_entry(2, section="x")]

    def fetch_latest_locations(self):
        self._check()
        return []


@pytest.fixture
def ctx():
    return ViewContext(source=StubSource(), timeline=TimelineController(), tz_name="UTC")


def test_browse_and_select(ctx):
    assert ctx.refresh_trackers()
    assert [t.name for t in ctx.trackers] == ["car", "bike"]
    assert ctx.select_tracker("car")
    assert [s.id for s in ctx.sections] == ["a", "b"]
    section = ctx.select_section("b")
    assert section is ctx.selected_section
    assert ctx.timeline.state.total_time == 1


def test_failure_keeps_previous_state(ctx):
    ctx.select_tracker("car")
    ctx.select_section("a")
    ctx.source.fail = True
    assert not ctx.select_tracker("bike")
    assert ctx.tracker_name == "car"
    assert [s.id for s in ctx.sections] == ["a", "b"]
    assert ctx.selected_section is not None
    assert ctx.notice
    assert not ctx.search(date(2024, 5, 1), date(2024, 5, 2))
    assert [s.id for s in ctx.sections] == ["a", "b"]


def test_search_groups_results(ctx):
    assert not ctx.search(date(2024, 5, 1), date(2024, 5, 2))
    ctx.select_tracker("car")
    assert not ctx.search(date(2024, 5, 3), date(2024, 5, 1))
    assert ctx.search(date(2024, 5, 1), date(2024, 5, 2))
    assert [(s.id, len(s.entries)) for s in ctx.sections] == [("x", 2), ("y", 1)]
    assert ctx.notice is None


def test_switching_tracker_clears_selection(ctx):
    ctx.select_tracker("car")
    ctx.select_section("a")
    ctx.timeline.play()
    ctx.select_tracker("bike")
    assert ctx.selected_section is None
    assert not ctx.timeline.state.is_playing


def test_unknown_section_sets_notice(ctx):
    ctx.select_tracker("car")
    assert ctx.select_section("zzz") is None
    assert "zzz" in ctx.notice
