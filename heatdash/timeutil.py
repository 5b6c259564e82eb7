"""
heatdash.timeutil
~~~~~~~~~~~~~~~~~
US/Eastern time helpers shared by the data services and the views.

All timestamps kept in snapshots are ISO-8601 strings with an explicit
America/New_York offset, so age comparisons never depend on the server's
local zone.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

EST = ZoneInfo("America/New_York")

# Friday evening cut-over: from this hour the calendar shows next week
WEEK_ROLLOVER_HOUR = 18

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_est(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(EST)


def to_est_iso(dt: datetime) -> str:
    return to_est(dt).isoformat()


def parse_iso(iso: Optional[str]) -> Optional[datetime]:
    if not iso:
        return None
    try:
        dt = datetime.fromisoformat(iso)
    except (TypeError, ValueError):
        return None
    return to_est(dt)


def format_est_time(iso: Optional[str]) -> str:
    """'2025-11-18T09:45:00-05:00' -> '09:45 AM'.  Empty string if unparsable."""
    dt = parse_iso(iso)
    return dt.strftime("%I:%M %p") if dt else ""


def is_older_than(iso: Optional[str], minutes: float, now: Optional[datetime] = None) -> bool:
    """True when *iso* is missing, unparsable, or more than *minutes* before *now*."""
    then = parse_iso(iso)
    if then is None:
        return True
    now = now or utc_now()
    return to_est(now) - then > timedelta(minutes=minutes)


def current_week_range(now: Optional[datetime] = None) -> Tuple[date, date]:
    """
    Monday and Friday of the "display week" in US/Eastern.

    Monday through Friday before 18:00 show the current week; Friday from
    18:00, Saturday and Sunday show the upcoming week.
    """
    est = to_est(now or utc_now())
    today = est.date()
    weekday = today.weekday()          # 0=Mon .. 6=Sun
    after_close = (weekday == 4 and est.hour >= WEEK_ROLLOVER_HOUR) or weekday >= 5
    if after_close:
        monday = today + timedelta(days=7 - weekday)
    else:
        monday = today - timedelta(days=weekday)
    return monday, monday + timedelta(days=4)


def week_key(monday: date) -> str:
    """ISO year-week label, e.g. '2025-47'."""
    year, week, _ = monday.isocalendar()
    return f"{year}-{week:02d}"


def last_updated_line(iso: Optional[str], timeframe: str, error: Optional[str] = None) -> str:
    """Status line shown under every heatmap and the earnings calendar."""
    if not iso:
        if error:
            return f"Last updated: -- ({timeframe}) – error: {error}"
        return f"Last updated: -- ({timeframe})"
    formatted = format_est_time(iso)
    if error:
        return f"Last updated: {formatted} ({timeframe}) – last refresh failed"
    return f"Last updated: {formatted} ({timeframe})"
