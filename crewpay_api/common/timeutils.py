# crewpay_api/common/timeutils.py
"""
Time helpers.

Timestamps are stored as naive UTC (``db.DateTime`` columns); input arrives
either as local wall-clock date/time strings plus a zone, or as ISO-8601
strings with an explicit offset.
"""
from __future__ import annotations

import calendar
from datetime import date, datetime, time as _time, timedelta, timezone
from decimal import Decimal
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

DEFAULT_TIMEZONE = "America/Chicago"
PERIOD_MODES = ("week", "month", "all")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def default_timezone() -> str:
    if has_app_context():
        return current_app.config.get("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)
    return DEFAULT_TIMEZONE


def get_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or default_timezone())
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"unknown timezone: {name}")


def parse_date(s) -> Optional[date]:
    if not s:
        return None
    if isinstance(s, date):
        return s
    try:
        return date.fromisoformat(str(s))
    except ValueError:
        return None


def parse_hhmm(s) -> Optional[_time]:
    if not s:
        return None
    try:
        return datetime.strptime(str(s).strip(), "%H:%M").time()
    except ValueError:
        return None


def combine_local(d: date, t: _time, tz: Optional[str] = None) -> datetime:
    """Wall-clock date + time in ``tz`` → aware datetime."""
    return datetime.combine(d, t).replace(tzinfo=get_zone(tz))


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a stored naive timestamp."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso(dt: Optional[datetime]) -> Optional[str]:
    v = as_utc(dt)
    return v.isoformat().replace("+00:00", "Z") if v else None


def parse_iso_datetime(value) -> Optional[datetime]:
    """
    ISO-8601 with explicit offset or 'Z' → naive UTC.
    Raises ValueError for naive or malformed input.
    """
    if value in (None, ""):
        return None
    s = str(value).strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        raise ValueError("timestamp must include a UTC offset or 'Z'")
    return to_utc_naive(dt)


def hours_between(start: datetime, end: datetime) -> Decimal:
    seconds = (end - start).total_seconds()
    return Decimal(str(seconds)) / Decimal(3600)


def local_date(dt: datetime, tz: Optional[str] = None) -> date:
    """Calendar day of a stored (naive UTC) timestamp in ``tz``."""
    return as_utc(dt).astimezone(get_zone(tz)).date()


def period_window(mode: str, offset: int = 0, today: Optional[date] = None) -> Tuple[Optional[date], Optional[date]]:
    """
    Inclusive date window for 'week' (Monday..Sunday), 'month' or 'all'.
    ``offset`` shifts by whole weeks/months relative to ``today``.
    """
    mode = (mode or "week").lower()
    if mode not in PERIOD_MODES:
        raise ValueError(f"mode must be one of: {', '.join(PERIOD_MODES)}")
    if mode == "all":
        return None, None

    today = today or datetime.now(get_zone(None)).date()
    if mode == "week":
        start = today - timedelta(days=today.weekday()) + timedelta(weeks=offset)
        return start, start + timedelta(days=6)

    month_index = today.year * 12 + (today.month - 1) + offset
    year, month = divmod(month_index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)
