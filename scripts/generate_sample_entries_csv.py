from __future__ import annotations

import argparse
import csv
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final

from zoneinfo import ZoneInfo


TZ: Final[str] = "Asia/Shanghai"


@dataclass(frozen=True, slots=True)
class Route:
    name: str
    lat: float
    lon: float


def generate_entries(
    *,
    sections: int,
    entries_per_section: int,
    seed: int,
    start_local: datetime,
    routes: list[Route],
) -> list[dict[str, str]]:
    """Generate fake tracker entries: a few trips with speeding and incidents."""

    rng = random.Random(seed)
    tz = ZoneInfo(TZ)
    cur = start_local.replace(tzinfo=tz)

    out: list[dict[str, str]] = []
    for sec in range(1, sections + 1):
        route = rng.choice(routes)
        lat, lon = route.lat, route.lon
        heading = rng.uniform(0, 2 * math.pi)
        speed = rng.uniform(20, 50)

        for _ in range(entries_per_section):
            # Drift heading and speed; occasionally speed up past the limit
            heading += rng.uniform(-0.3, 0.3)
            speed = min(120.0, max(0.0, speed + rng.uniform(-8, 8) + (15 if rng.random() < 0.05 else 0)))

            # Irregular sampling: usually 5-15 s, sometimes a minute
            step_s = rng.uniform(5, 15) if rng.random() > 0.1 else rng.uniform(40, 70)
            dist_deg = speed / 3.6 * step_s / 111_000.0
            lat += dist_deg * math.cos(heading)
            lon += dist_deg * math.sin(heading) / max(0.2, math.cos(math.radians(lat)))
            cur = cur + timedelta(seconds=step_s)

            roll = rng.random()
            event = "swerve" if roll < 0.03 else "brake" if roll < 0.06 else "none"

            out.append(
                {
                    "timestamp": cur.isoformat(),
                    "latitude": f"{lat:.7f}",
                    "longitude": f"{lon:.7f}",
                    "speed": f"{speed:.2f}",
                    "eventType": event,
                    "sectionID": str(sec),
                }
            )

        # Parked between trips
        cur = cur + timedelta(hours=rng.uniform(1, 6))

    return out


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake tracker entries CSV for demo/testing.")
    p.add_argument("--out", type=str, default="sample_data/entries.csv", help="Output CSV path")
    p.add_argument("--sections", type=int, default=5, help="Number of trips")
    p.add_argument("--entries", type=int, default=120, help="Entries per trip")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument(
        "--start",
        type=str,
        default="2025-01-01 08:00:00",
        help="Start local time in Asia/Shanghai, e.g. '2025-01-01 08:00:00'",
    )
    args = p.parse_args()

    routes = [
        Route("shanghai", 31.2304000, 121.4737000),
        Route("beijing", 39.9042000, 116.4074000),
        Route("shenzhen", 22.5431000, 114.0579000),
    ]
    rows = generate_entries(
        sections=args.sections,
        entries_per_section=args.entries,
        seed=args.seed,
        start_local=datetime.fromisoformat(args.start),
        routes=routes,
    )
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with out_path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=["timestamp", "latitude", "longitude", "speed", "eventType", "sectionID"])
        w.writeheader()
        w.writerows(rows)

    print(f"Generated: {out_path} (rows={len(rows)}, seed={args.seed})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
