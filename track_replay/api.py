"""HTTP client for the tracker service.

Like the rest of the package this uses only the standard library. The client
does no caching and no retries; callers decide what to keep on failure.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import date
from typing import Any

from track_replay.errors import AcquisitionError, MalformedEntry
from track_replay.models import DEFAULT_TZ, Entry, LatestLocation, Section, Tracker
from track_replay.records import (
    latest_location_from_record,
    parse_entries,
    section_from_record,
    tracker_from_record,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiConfig:
    """Configuration for the tracker service."""

    base_url: str = "http://localhost:3000"
    timeout_seconds: float = 10.0
    user_agent: str = "track-replay/0.1.0"
    tz_name: str = DEFAULT_TZ


class TrackerApiClient:
    """Read-only access to /api/tracker endpoints."""

    def __init__(self, config: ApiConfig | None = None) -> None:
        self._cfg = config or ApiConfig()

    def fetch_trackers(self) -> list[Tracker]:
        return [tracker_from_record(r) for r in self._get_list("/api/tracker")]

    def fetch_sections(self, tracker_name: str) -> list[Section]:
        """Recent sections of a tracker, in the order the service returns them."""

        path = f"/api/tracker/{urllib.parse.quote(tracker_name, safe='')}/sections"
        return [section_from_record(r, self._cfg.tz_name) for r in self._get_list(path)]

    def fetch_entries_in_range(self, tracker_name: str, start_date: date, end_date: date) -> list[Entry]:
        path = f"/api/tracker/{urllib.parse.quote(tracker_name, safe='')}/search"
        query = {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}
        entries, _ = parse_entries(self._get_list(path, query), self._cfg.tz_name)
        return entries

    def fetch_latest_locations(self) -> list[LatestLocation]:
        out: list[LatestLocation] = []
        for record in self._get_list("/api/tracker/latest-locations"):
            try:
                out.append(latest_location_from_record(record, self._cfg.tz_name))
            except MalformedEntry as exc:
                logger.debug("跳过损坏的最新位置：%s", exc)
        return out

    def fetch_tracker_details(self, tracker_name: str) -> LatestLocation:
        path = f"/api/tracker/{urllib.parse.quote(tracker_name, safe='')}/details"
        raw = self._get_json(path)
        if not isinstance(raw, dict):
            raise AcquisitionError(f"接口返回格式错误（应为对象）：{path}")
        try:
            return latest_location_from_record(raw, self._cfg.tz_name)
        except MalformedEntry as exc:
            raise AcquisitionError(str(exc)) from exc

    def _get_list(self, path: str, query: dict[str, str] | None = None) -> list[dict[str, Any]]:
        raw = self._get_json(path, query)
        if not isinstance(raw, list):
            raise AcquisitionError(f"接口返回格式错误（应为数组）：{path}")
        return [r for r in raw if isinstance(r, dict)]

    def _get_json(self, path: str, query: dict[str, str] | None = None) -> Any:
        url = self._cfg.base_url.rstrip("/") + path
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"
        req = urllib.request.Request(
            url,
            headers={
                "User-Agent": self._cfg.user_agent,
                "Accept": "application/json",
            },
            method="GET",
        )
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self._cfg.timeout_seconds) as resp:  # noqa: S310
                body = resp.read().decode("utf-8", errors="replace")
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise AcquisitionError(f"请求失败：{url}（{exc}）") from exc
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise AcquisitionError(f"接口返回的不是有效JSON：{url}") from exc
