"""
heatdash.profiles
~~~~~~~~~~~~~~~~~
Company profiles (name, logo, market cap) from Finnhub /stock/profile2,
cached per symbol for a week.
"""
from __future__ import annotations

import logging
from typing import Optional

from heatdash.cache import PROFILES_KEY, SnapshotCache
from heatdash.timeutil import Clock, is_older_than, utc_now

log = logging.getLogger(__name__)

PROFILE_TTL_MINUTES = 60 * 24 * 7


def _normalize_logo(logo: Optional[str]) -> Optional[str]:
    if not logo:
        return None
    return logo if logo.startswith("http") else f"https://{logo}"


class ProfileService:
    def __init__(self, client, storage, clock: Clock = utc_now) -> None:
        self.client = client
        self.cache = SnapshotCache(PROFILES_KEY, storage, defaults={"profiles": {}}, clock=clock)

    def cached(self, symbol: str) -> Optional[dict]:
        with self.cache.lock:
            return self.cache.state["profiles"].get(symbol.upper())

    def get_profile(self, symbol: str) -> dict:
        """
        Return {symbol, name, logo, market_cap_b, fetched} for *symbol*.

        Served from cache while younger than a week.  Raises FetchError when
        the cache is stale and Finnhub fails.
        """
        key = symbol.upper()
        cached = self.cached(key)
        if cached and not is_older_than(cached.get("fetched"), PROFILE_TTL_MINUTES,
                                        now=self.cache.clock()):
            return cached

        data = self.client.finnhub("/stock/profile2", symbol=key) or {}
        # Finnhub reports marketCapitalization in millions USD
        raw_cap = data.get("marketCapitalization")
        cap_b = round(raw_cap / 1000, 3) if isinstance(raw_cap, (int, float)) and raw_cap > 0 else None

        profile = {
            "symbol":       key,
            "name":         data.get("name") or data.get("ticker") or key,
            "logo":         _normalize_logo(data.get("logo")),
            "market_cap_b": cap_b,
            "fetched":      self.cache.now_iso(),
        }
        with self.cache.lock:
            self.cache.state["profiles"][key] = profile
        self.cache.save()
        log.debug("Profile fetched: %s (cap %s B)", key, cap_b)
        return profile
