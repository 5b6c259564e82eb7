"""
heatdash.earnings
~~~~~~~~~~~~~~~~~
Weekly earnings calendar: the biggest reporters of the display week,
grouped by weekday and session (before open / after close).

Data: Finnhub /calendar/earnings, decorated with company profiles.
Refreshed at most once a day per display week.
"""
from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Dict, List, Optional

from heatdash.cache import EARNINGS_KEY, SnapshotCache
from heatdash.data import FetchError, MissingApiKeyError, RateLimitError
from heatdash.timeutil import Clock, current_week_range, utc_now, week_key

log = logging.getLogger(__name__)

MAX_EARNINGS_COUNT       = 80
EARNINGS_REFRESH_MINUTES = 60 * 24

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
SESSIONS = ["BMO", "AMC"]
SESSION_LABELS = {"BMO": "Before Open", "AMC": "After Close"}


def empty_week() -> Dict[str, Dict[str, list]]:
    return {day: {s: [] for s in SESSIONS} for day in WEEKDAYS}


def weekday_name(date_str: Optional[str]) -> Optional[str]:
    """'2025-11-17' -> 'Monday'; None for weekends or bad input."""
    if not date_str:
        return None
    try:
        d = date.fromisoformat(date_str)
    except ValueError:
        return None
    idx = d.weekday()
    return WEEKDAYS[idx] if idx < 5 else None


def session_from_hour(hour: Optional[str]) -> str:
    """Finnhub 'hour' field -> BMO / AMC.  Unknown or missing defaults to AMC."""
    if hour and hour.strip().lower() == "bmo":
        return "BMO"
    return "AMC"


def group_entries(entries: List[dict], profiles: Dict[str, dict],
                  limit: int = MAX_EARNINGS_COUNT) -> Dict[str, Dict[str, list]]:
    """
    Keep the *limit* largest reporters and bucket them by weekday/session.

    Weekend or undated entries never count towards *limit*.  Entries whose
    profile has no market cap are dropped, unless none has one - then
    everything is kept in provider order.
    """
    decorated = []
    for e in entries:
        sym = e.get("symbol")
        day = weekday_name(e.get("date"))
        if not sym or day is None:
            continue
        profile = profiles.get(sym) or {"symbol": sym, "name": sym, "logo": None, "market_cap_b": None}
        decorated.append((e, profile, day))

    with_cap = [d for d in decorated if isinstance(d[1].get("market_cap_b"), (int, float))]
    if not with_cap:
        with_cap = decorated
    with_cap.sort(key=lambda d: d[1].get("market_cap_b") or 0, reverse=True)

    grouped = empty_week()
    for e, profile, day in with_cap[:limit]:
        grouped[day][session_from_hour(e.get("hour"))].append({
            "symbol":           e["symbol"],
            "company_name":     profile.get("name") or e["symbol"],
            "logo":             profile.get("logo"),
            "market_cap_b":     profile.get("market_cap_b"),
            "date":             e.get("date"),
            "hour":             e.get("hour"),
            "eps_actual":       e.get("epsActual"),
            "eps_estimate":     e.get("epsEstimate"),
            "revenue_actual":   e.get("revenueActual"),
            "revenue_estimate": e.get("revenueEstimate"),
        })
    return grouped


class EarningsService:
    def __init__(self, storage, client, profiles, clock: Clock = utc_now) -> None:
        self.client   = client
        self.profiles = profiles
        self.cache    = SnapshotCache(EARNINGS_KEY, storage, clock=clock, defaults={
            "week_key":   None,
            "days":       None,
            "last_fetch": None,
        })
        self.status = "idle"
        self.error: Optional[str] = None
        self._refresh_lock = threading.Lock()

    def _profiles_for(self, symbols: List[str]) -> Dict[str, dict]:
        out: Dict[str, dict] = {}
        rate_limited = False
        for sym in symbols:
            if not rate_limited:
                try:
                    out[sym] = self.profiles.get_profile(sym)
                    continue
                except (RateLimitError, MissingApiKeyError) as exc:
                    log.warning("Earnings: profile lookups stopped at %s: %s", sym, exc)
                    rate_limited = True
                except FetchError as exc:
                    log.debug("Earnings: no profile for %s: %s", sym, exc)
            cached = self.profiles.cached(sym)
            if cached:
                out[sym] = cached
        return out

    def _needs_refresh(self, key: str) -> bool:
        with self.cache.lock:
            same_week = self.cache.state.get("week_key") == key and self.cache.state.get("days")
        return not same_week or self.cache.is_stale("last_fetch", EARNINGS_REFRESH_MINUTES)

    def refresh(self) -> None:
        monday, friday = current_week_range(self.cache.clock())
        key = week_key(monday)
        if not self._needs_refresh(key):
            return

        self.status = "loading"
        self.error  = None
        log.info("Earnings: fetching calendar %s .. %s (week %s)", monday, friday, key)
        raw = self.client.finnhub("/calendar/earnings", **{"from": monday.isoformat(), "to": friday.isoformat()})
        entries = (raw or {}).get("earningsCalendar") or []

        if entries:
            symbols  = sorted({e["symbol"] for e in entries if e.get("symbol")})
            profiles = self._profiles_for(symbols)
            days     = group_entries(entries, profiles)
        else:
            days = empty_week()

        with self.cache.lock:
            self.cache.state["week_key"] = key
            self.cache.state["days"]     = days
        self.cache.stamp("last_fetch")
        self.cache.save()
        self.status = "ready"
        log.info("Earnings: %d entries for week %s", len(entries), key)

    def get_week(self) -> dict:
        with self._refresh_lock:
            try:
                self.refresh()
            except FetchError as exc:
                log.warning("Earnings: refresh failed: %s", exc)
                self.status = "error"
                self.error  = str(exc)
        with self.cache.lock:
            state = dict(self.cache.state)
        return {
            "days":         state.get("days") or empty_week(),
            "week":         state.get("week_key"),
            "last_updated": state.get("last_fetch"),
            "status":       self.status,
            "error":        self.error,
        }

    def last_updated(self) -> Optional[str]:
        with self.cache.lock:
            return self.cache.state.get("last_fetch")

    def reset(self) -> None:
        self.cache.reset()
        self.status = "idle"
        self.error  = None
