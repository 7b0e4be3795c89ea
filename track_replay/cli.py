"""Command-line interface for track_replay.

Run:
    python -m track_replay inspect --data entries.csv
    python -m track_replay replay --data entries.csv --section 3 --speed 4
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from track_replay.config import ReplayParams
from track_replay.engine import require_plottable
from track_replay.errors import EmptySection, TrackReplayError
from track_replay.inspect import export_readable_csv, summarize_section
from track_replay.models import DEFAULT_TZ, PlaybackState, Section
from track_replay.records import load_sections
from track_replay.timeline import AsyncTicker, TimelineController
from track_replay.timeutils import format_local

logger = logging.getLogger(__name__)


def _pick_section(sections: list[Section], section_id: str | None) -> Section:
    if not sections:
        raise EmptySection("文件中没有任何分段")
    if section_id is None:
        return sections[0]
    for s in sections:
        if s.id == section_id:
            return s
    raise TrackReplayError(f"找不到分段：{section_id!r}。可用：{', '.join(s.id for s in sections)}")


def _cmd_sections(args: argparse.Namespace) -> int:
    sections = load_sections(args.data, args.tz)
    print("### 分段列表")
    for s in sections:
        print(f"{s.label}（{len(s.entries)} 条记录）")
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    sections = load_sections(args.data, args.tz)
    section = _pick_section(sections, args.section)
    res = summarize_section(section, args.overspeed_kmh)

    print(f"### 分段 {res.section_id}")
    print(f"entries={res.entries_total}, plottable={res.entries_plottable}")
    if res.start is not None and res.end is not None:
        print(f"start={format_local(res.start, args.tz)}, end={format_local(res.end, args.tz)}")
    print(f"distance={res.distance_m / 1000.0:.3f} km, max_speed={res.max_speed:.2f} km/h")
    print(f"overspeed_segments={res.overspeed_segments}/{res.segments}（阈值 {args.overspeed_kmh} km/h）")
    print(f"swerve={res.swerves}, brake={res.brakes}")

    if args.json:
        payload = asdict(res) | {"duration_seconds": res.duration_seconds}
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    return 0


def _cmd_export_readable(args: argparse.Namespace) -> int:
    sections = load_sections(args.data, args.tz)
    entries = [e for s in sections for e in s.entries]
    export_readable_csv(entries, args.out, args.tz)
    print(f"已导出：{args.out}（{len(entries)} 条记录）")
    return 0


async def _replay(controller: TimelineController, ticker: AsyncTicker) -> None:
    controller.play()
    await ticker.join()


def _cmd_replay(args: argparse.Namespace) -> int:
    params = ReplayParams(
        tz_name=args.tz,
        overspeed_kmh=args.overspeed_kmh,
        tick_interval_s=args.tick_interval,
    )
    sections = load_sections(args.data, args.tz)
    section = _pick_section(sections, args.section)
    require_plottable(section.entries)

    ticker = AsyncTicker(params.tick_interval_s)
    controller = TimelineController(params, ticker=ticker)
    controller.select_section(section)
    controller.set_speed(args.speed)
    if args.start:
        controller.seek(args.start)

    def _print_frame(state: PlaybackState) -> None:
        geom = controller.geometry
        if geom is None:
            return
        frame = geom.frame(state.current_time)
        if frame.position is None or frame.entry is None:
            return
        lat, lon = frame.position
        flag = f" [{frame.entry.event_type.upper()}]" if frame.entry.is_incident else ""
        print(
            f"t={state.current_time:7.2f}/{state.total_time} lat={lat:.6f} lon={lon:.6f} "
            f"speed={frame.entry.speed:.1f}{flag}",
            flush=True,
        )

    controller.subscribe(_print_frame)
    if controller.state.total_time == 0:
        print("该分段只有一个定位点，无需回放。")
        return 0
    try:
        asyncio.run(_replay(controller, ticker))
    except KeyboardInterrupt:
        print("\n收到中断信号：停止回放。", file=sys.stderr, flush=True)
    finally:
        controller.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    defaults = ReplayParams()
    p = argparse.ArgumentParser(prog="track_replay")
    p.add_argument("-v", "--verbose", action="count", default=0, help="输出更多日志（-vv 为调试日志）")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--data", type=str, default="entries.csv", help="输入文件（CSV 或 JSON）")
        sp.add_argument("--tz", type=str, default=DEFAULT_TZ, help="时区（IANA），默认 Asia/Shanghai")

    p_sec = sub.add_parser("sections", help="按 sectionID 分组并列出分段")
    add_common(p_sec)
    p_sec.set_defaults(func=_cmd_sections)

    p_ins = sub.add_parser("inspect", help="统计一个分段的里程/超速/事件")
    add_common(p_ins)
    p_ins.add_argument("--section", type=str, default=None, help="分段ID（默认第一个）")
    p_ins.add_argument("--overspeed-kmh", type=float, default=defaults.overspeed_kmh, help="超速阈值（km/h）")
    p_ins.add_argument("--json", action="store_true", help="额外输出JSON（便于后处理）")
    p_ins.set_defaults(func=_cmd_inspect)

    p_exp = sub.add_parser("export-readable", help="导出可读时间的记录CSV")
    add_common(p_exp)
    p_exp.add_argument("--out", type=str, default="readable.csv", help="输出CSV路径")
    p_exp.set_defaults(func=_cmd_export_readable)

    p_rep = sub.add_parser("replay", help="在终端回放一个分段（打印插值位置）")
    add_common(p_rep)
    p_rep.add_argument("--section", type=str, default=None, help="分段ID（默认第一个）")
    p_rep.add_argument("--speed", type=float, default=1.0, help="回放倍速（1~100）")
    p_rep.add_argument("--start", type=float, default=0.0, help="从第几个点开始（虚拟时间）")
    p_rep.add_argument("--tick-interval", type=float, default=defaults.tick_interval_s, help="刷新间隔（秒）")
    p_rep.add_argument("--overspeed-kmh", type=float, default=defaults.overspeed_kmh, help="超速阈值（km/h）")
    p_rep.set_defaults(func=_cmd_replay)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else logging.INFO if args.verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except (TrackReplayError, KeyError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
