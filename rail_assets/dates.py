"""Parsing of the start/end/tz query parameters used by log listings."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rail_assets.error import abort


def get_zone(tz_str: Optional[str]) -> Optional[ZoneInfo]:
    if not tz_str:
        return None
    tz_str = tz_str.strip()
    if not tz_str:
        return None
    try:
        return ZoneInfo(tz_str)
    except (ZoneInfoNotFoundError, ValueError):
        abort(400, "BAD_REQUEST", f"Unknown time zone: {tz_str} (e.g. Africa/Nairobi, UTC)")


def parse_dt_or_date(s: str, *, is_end: bool, assume_tz: Optional[ZoneInfo]) -> datetime:
    """
    Accepts:
      - "YYYY-MM-DD"
      - ISO datetime: "YYYY-MM-DDTHH:MM:SS", with or without "Z" / "+03:00"
    Rules:
      - a date means local midnight; as an end bound it means the next midnight (half-open)
      - naive input is read in assume_tz, or UTC when no tz was given
      - returns naive UTC to match stored timestamps
    """
    s = (s or "").strip()
    if not s:
        abort(400, "BAD_REQUEST", "start/end must not be empty")

    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        try:
            d = date.fromisoformat(s)
        except ValueError:
            abort(400, "BAD_REQUEST", f"Invalid date: {s}, expected YYYY-MM-DD")

        local_dt = datetime(d.year, d.month, d.day)
        if is_end:
            local_dt = local_dt + timedelta(days=1)

        local_dt = local_dt.replace(tzinfo=assume_tz or timezone.utc)
        return local_dt.astimezone(timezone.utc).replace(tzinfo=None)

    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        abort(400, "BAD_REQUEST", f"Invalid datetime: {s}, e.g. 2026-01-12T08:30:00 or 2026-01-12T08:30:00Z")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=assume_tz or timezone.utc)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)
