from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pandas as pd
import pydeck as pdk
import streamlit as st

from track_replay.api import ApiConfig, TrackerApiClient
from track_replay.config import ReplayParams
from track_replay.context import TrackerSource, ViewContext
from track_replay.engine import SectionGeometry
from track_replay.models import COLOR_NORMAL, COLOR_OVERSPEED, DEFAULT_TZ, EVENT_BRAKE, EVENT_SWERVE
from track_replay.overview import STATUS_INACTIVE, STATUS_LIVE, overview_markers
from track_replay.records import FileTrackerSource
from track_replay.timeline import ElapsedClock, TimelineController
from track_replay.timeutils import format_local, tzinfo_from_name

# RGB colours of the drawing surface.
_SEGMENT_RGB = {COLOR_OVERSPEED: [220, 30, 30], COLOR_NORMAL: [30, 90, 220]}
_EVENT_RGB = {EVENT_SWERVE: [255, 165, 0], EVENT_BRAKE: [240, 220, 0]}
_MARKER_RGB = [0, 60, 255]
_STATUS_RGB = {STATUS_LIVE: [0, 160, 0], STATUS_INACTIVE: [128, 0, 128]}


def _context_key(source_kind: str, location: str, params: ReplayParams) -> str:
    return f"{source_kind}|{location}|{params.tz_name}|{params.overspeed_kmh}"


def _get_context(source_kind: str, location: str, params: ReplayParams) -> ViewContext:
    """One ViewContext per data source/parameter combination, kept across reruns."""

    key = _context_key(source_kind, location, params)
    ctx: ViewContext | None = st.session_state.get("ctx")
    if ctx is not None and st.session_state.get("ctx_key") == key:
        return ctx
    if ctx is not None:
        ctx.timeline.close()

    source: TrackerSource
    if source_kind == "api":
        source = TrackerApiClient(ApiConfig(base_url=location, tz_name=params.tz_name))
    else:
        source = FileTrackerSource(location, params.tz_name)
    ctx = ViewContext(source=source, timeline=TimelineController(params), tz_name=params.tz_name)
    ctx.refresh_trackers()
    st.session_state["ctx"] = ctx
    st.session_state["ctx_key"] = key
    return ctx


def _layers(geom: SectionGeometry, tz_name: str) -> list[pdk.Layer]:
    """Static per-section layers: coloured segments and event markers."""

    segs = pd.DataFrame(
        [
            {
                "start": [s.start[1], s.start[0]],
                "end": [s.end[1], s.end[0]],
                "color": _SEGMENT_RGB[s.color],
                "info": f"Time: {format_local(s.tooltip_time, tz_name)}<br/>Speed: {s.tooltip_speed:.2f} km/h",
            }
            for s in geom.segments
        ]
    )
    events = pd.DataFrame(
        [
            {
                "position": [m.position[1], m.position[0]],
                "color": _EVENT_RGB[m.kind],
                "info": f"<b>{m.kind.upper()}</b><br/>Time: {format_local(m.timestamp, tz_name)}"
                f"<br/>Speed: {m.speed:.2f} km/h",
            }
            for m in geom.event_markers
        ]
    )
    layers: list[pdk.Layer] = []
    if not segs.empty:
        layers.append(
            pdk.Layer(
                "LineLayer",
                data=segs,
                get_source_position="start",
                get_target_position="end",
                get_color="color",
                get_width=5,
                pickable=True,
            )
        )
    if not events.empty:
        layers.append(
            pdk.Layer(
                "ScatterplotLayer",
                data=events,
                get_position="position",
                get_fill_color="color",
                get_radius=12,
                radius_min_pixels=5,
                pickable=True,
            )
        )
    return layers


def _render_replay(ctx: ViewContext) -> None:
    timeline = ctx.timeline
    section = ctx.selected_section
    if section is None:
        st.info("请在左侧选择一个分段查看地图。")
        return
    geom = timeline.geometry
    if geom is None or not geom.entries:
        st.warning("该分段没有可用数据。")
        return

    st.subheader(f"Tracker: {ctx.tracker_name}, Section: {section.id}, Date: {section.date}")
    static_layers = _layers(geom, ctx.tz_name)
    params = timeline.params

    def on_seek() -> None:
        timeline.seek(st.session_state["seek"])

    def on_speed() -> None:
        timeline.set_speed(st.session_state["speed"])

    c1, c2 = st.columns([1, 4])
    c1.button(
        "Pause" if timeline.state.is_playing else "Play",
        on_click=timeline.toggle,
        use_container_width=True,
    )
    c2.number_input(
        "Speed",
        min_value=params.min_speed,
        max_value=params.max_speed,
        value=float(timeline.state.speed_multiplier),
        step=1.0,
        key="speed",
        on_change=on_speed,
    )

    @st.fragment(run_every=params.tick_interval_s if timeline.state.is_playing else None)
    def playback() -> None:
        was_playing = timeline.state.is_playing
        # Any rerun may land here, so advance by the real time since the last one.
        clock: ElapsedClock = st.session_state.setdefault("tick_clock", ElapsedClock(10 * params.tick_interval_s))
        if was_playing:
            timeline.tick(clock.elapsed())
        else:
            clock.reset()
        state = timeline.state

        frame = geom.frame(state.current_time)
        layers = list(static_layers)
        if frame.position is not None:
            marker = pd.DataFrame(
                [
                    {
                        "position": [frame.position[1], frame.position[0]],
                        "info": f"Time: {format_local(frame.entry.timestamp, ctx.tz_name)}" if frame.entry else "",
                    }
                ]
            )
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    data=marker,
                    get_position="position",
                    get_fill_color=_MARKER_RGB,
                    get_radius=15,
                    radius_min_pixels=8,
                    pickable=True,
                )
            )
        center = geom.bounds.center if geom.bounds is not None else frame.position or (0.0, 0.0)
        st.pydeck_chart(
            pdk.Deck(
                layers=layers,
                initial_view_state=pdk.ViewState(latitude=center[0], longitude=center[1], zoom=14),
                tooltip={"html": "{info}"},
                map_style=None,
            ),
            height=500,
        )

        if state.total_time > 0:
            st.session_state["seek"] = float(state.current_time)
            st.slider(
                "时间轴",
                min_value=0.0,
                max_value=float(state.total_time),
                step=0.1,
                key="seek",
                on_change=on_seek,
            )
        marks = geom.event_marks
        if marks:
            st.caption(
                "事件标记：" + "，".join(f"#{k} {geom.entries[k].event_type.upper()}" for k in sorted(marks))
            )
        if was_playing and not state.is_playing:
            # Auto-stopped at end of trip: full rerun so the button and cadence update.
            st.rerun()

    playback()


def _render_overview(ctx: ViewContext, params: ReplayParams) -> None:
    if st.button("刷新最新位置"):
        ctx.refresh_latest()
    markers = overview_markers(ctx.latest, datetime.now(UTC), params.live_window_minutes)
    if not markers:
        st.info("暂无最新位置数据。")
        return
    df = pd.DataFrame(
        [
            {
                "position": [m.position[1], m.position[0]],
                "color": _STATUS_RGB[m.status],
                "info": f"<b>{m.tracker_name}</b><br/>Last Update: {format_local(m.timestamp, ctx.tz_name)}",
            }
            for m in markers
        ]
    )
    st.pydeck_chart(
        pdk.Deck(
            layers=[
                pdk.Layer(
                    "ScatterplotLayer",
                    data=df,
                    get_position="position",
                    get_fill_color="color",
                    radius_min_pixels=10,
                    pickable=True,
                )
            ],
            initial_view_state=pdk.ViewState(latitude=0, longitude=0, zoom=1),
            tooltip={"html": "{info}"},
            map_style=None,
        ),
        height=600,
    )
    st.dataframe(
        [
            {
                "tracker": m.tracker_name,
                "status": "Live" if m.status == STATUS_LIVE else "Inactive",
                "last_update": format_local(m.timestamp, ctx.tz_name),
                "speed_kmh": round(m.speed, 2),
                "lat": round(m.position[0], 5),
                "lon": round(m.position[1], 5),
            }
            for m in markers
        ],
        use_container_width=True,
    )


def main() -> None:
    st.set_page_config(page_title="轨迹回放", layout="wide")
    st.title("GPS 轨迹回放")

    with st.sidebar:
        st.subheader("数据来源")
        source_label = st.radio("来源", ["服务接口", "本地文件"], horizontal=True)
        if source_label == "服务接口":
            source_kind = "api"
            location = st.text_input("服务地址", value=ApiConfig().base_url)
        else:
            source_kind = "file"
            location = st.text_input("CSV/JSON 路径", value="sample_data/entries.csv")
            if not Path(location).exists():
                st.error(f"找不到文件：{location!r}")
                return
        tz_name = st.text_input("时区（IANA）", value=DEFAULT_TZ)
        try:
            tzinfo_from_name(tz_name)
        except ValueError as exc:
            st.error(str(exc))
            return
        overspeed = st.number_input("超速阈值（km/h）", value=ReplayParams().overspeed_kmh, step=5.0)
        params = ReplayParams(tz_name=tz_name, overspeed_kmh=float(overspeed))
        ctx = _get_context(source_kind, location, params)

        st.subheader("Trackers")
        names = [t.name for t in ctx.trackers]
        if names:
            current = names.index(ctx.tracker_name) if ctx.tracker_name in names else None
            picked = st.radio("设备", names, index=current, label_visibility="collapsed")
            if picked is not None and picked != ctx.tracker_name:
                ctx.select_tracker(picked)
        else:
            st.caption("没有设备。")

        if ctx.tracker_name is not None:
            st.subheader("Search Sections")
            today = datetime.now(tzinfo_from_name(tz_name)).date()
            start_d = st.date_input("开始日期", value=today - timedelta(days=7))
            end_d = st.date_input("结束日期", value=today)
            if st.button("Search", use_container_width=True):
                ctx.search(start_d, end_d)

            st.subheader("Sections")
            for s in ctx.sections:
                active = ctx.selected_section is s
                if st.button(s.label, key=f"sec-{s.id}", type="primary" if active else "secondary"):
                    ctx.select_section(s.id)
                    st.session_state.pop("seek", None)
                    st.rerun()

    if ctx.notice:
        st.warning(ctx.notice)

    tab_replay, tab_overview = st.tabs(["轨迹回放", "最新位置"])
    with tab_replay:
        _render_replay(ctx)
    with tab_overview:
        _render_overview(ctx, params)


if __name__ == "__main__":
    main()
