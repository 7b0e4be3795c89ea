"""Time parsing and formatting utilities."""

from __future__ import annotations

from datetime import date, datetime, timezone

from zoneinfo import ZoneInfo


def tzinfo_from_name(tz_name: str) -> timezone:
    """Create tzinfo from an IANA timezone name.

    Args:
        tz_name: Timezone name like "Asia/Shanghai".

    Returns:
        tzinfo instance.

    Raises:
        ValueError: If timezone name is invalid on this system.
    """

    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # ZoneInfo raises KeyError / ZoneInfoNotFoundError (platform dependent)
        raise ValueError(f"无效时区：{tz_name!r}。例如可用：Asia/Shanghai") from exc


def _from_epoch_ms(ms: float, tz: timezone) -> datetime:
    try:
        return datetime.fromtimestamp(ms / 1000.0, tz=tz)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError(f"无法解析时间：{ms!r}（超出可表示范围）") from exc


def parse_timestamp(value: object, tz_name: str) -> datetime:
    """Parse a record timestamp to a timezone-aware datetime.

    Accepted values:
      - int/float: Unix epoch milliseconds
      - numeric string: Unix epoch milliseconds
      - ISO 8601 string, with or without offset; a trailing "Z" means UTC
      - datetime (naive ones are assumed to be in tz_name)

    Raises:
        ValueError: If the value cannot be interpreted.
    """

    tz = tzinfo_from_name(tz_name)
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=tz)
    if isinstance(value, bool):
        raise ValueError(f"无法解析时间：{value!r}")
    if isinstance(value, (int, float)):
        return _from_epoch_ms(value, tz)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"无法解析时间：{value!r}")

    s = value.strip()
    if s.lstrip("-").isdigit():
        return _from_epoch_ms(int(s), tz)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s.replace("T", " "))
    except ValueError as exc:
        raise ValueError(f"无法解析时间：{value!r}。建议格式：2024-05-01T09:30:00Z") from exc
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt


def parse_day(text: str) -> date:
    """Parse a "YYYY-MM-DD" search bound."""

    try:
        return date.fromisoformat(text.strip())
    except ValueError as exc:
        raise ValueError(f"无法解析日期：{text!r}。建议格式：2024-05-01") from exc


def local_day(dt: datetime, tz_name: str) -> date:
    """Calendar date of dt in tz_name."""

    return dt.astimezone(tzinfo_from_name(tz_name)).date()


def format_local(dt: datetime, tz_name: str) -> str:
    """Readable local time used in tooltips and popups."""

    return dt.astimezone(tzinfo_from_name(tz_name)).strftime("%Y-%m-%d %H:%M:%S")


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0
