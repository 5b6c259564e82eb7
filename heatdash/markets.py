"""
heatdash.markets
~~~~~~~~~~~~~~~~
Data services behind the three heatmaps.

  Sp500Service   - curated S&P 500 names, Yahoo closes, Finnhub market caps
  SectorService  - SPDR sector ETFs, Yahoo closes, static sector weights
  CryptoService  - CoinGecko /coins/markets (caps, 24h and 7d changes)

Each service keeps its own SnapshotCache and refresh cadence, and always
answers with the last-known-good snapshot plus an ``error`` string when the
latest refresh failed.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import pandas as pd

from heatdash.cache import CRYPTO_KEY, SECTORS_KEY, SP500_KEY, SnapshotCache
from heatdash.data import FetchError, MissingApiKeyError, RateLimitError, day_changes, fetch_closes, week_changes
from heatdash.timeutil import Clock, utc_now
from heatdash.treemap import TIMEFRAME_1W, Tile
from heatdash.universe import CRYPTO_IDS, SECTOR_ETFS, SECTOR_WEIGHTS, SP500_META, SP500_SYMBOLS

log = logging.getLogger(__name__)

QUOTES_REFRESH_MINUTES = 10
WEEKLY_REFRESH_MINUTES = 60 * 12
CRYPTO_REFRESH_MINUTES = 5

# yfinance periods: enough sessions for a 1-day change / a 7-calendar-day window
QUOTES_PERIOD = "5d"
WEEKLY_PERIOD = "1mo"

ClosesFetcher = Callable[[List[str], str], pd.DataFrame]


class _HeatmapService:
    """Shared status/error bookkeeping and the get_data() contract."""

    key = ""
    defaults: Dict = {}

    def __init__(self, storage, clock: Clock = utc_now) -> None:
        self.cache  = SnapshotCache(self.key, storage, defaults=self.defaults, clock=clock)
        self.status = "idle"
        self.error: Optional[str] = None
        self._refresh_lock = threading.Lock()

    def _fail(self, what: str, exc: FetchError) -> None:
        log.warning("%s: %s refresh failed: %s", self.key, what, exc)
        self.status = "error"
        self.error  = str(exc)

    def refresh(self, timeframe: str) -> None:
        raise NotImplementedError

    def tiles(self) -> List[Tile]:
        raise NotImplementedError

    def last_updated(self) -> Optional[str]:
        raise NotImplementedError

    def get_data(self, timeframe: str) -> dict:
        """Refresh whatever is stale for *timeframe*, then return the snapshot."""
        with self._refresh_lock:
            self.refresh(timeframe)
        return {
            "tiles":        self.tiles(),
            "last_updated": self.last_updated(),
            "status":       self.status,
            "error":        self.error,
        }

    def reset(self) -> None:
        self.cache.reset()
        self.status = "idle"
        self.error  = None


class _EquityHeatmapService(_HeatmapService):
    """Quotes every 10 minutes, weekly change every 12 hours (only when 1W is shown)."""

    defaults = {
        "quotes":            {},    # symbol -> {price, change_1d}
        "weekly":            {},    # symbol -> {change_1w}
        "last_quotes_fetch": None,
        "last_weekly_fetch": None,
    }

    def __init__(self, storage, closes_fetcher: ClosesFetcher = fetch_closes,
                 clock: Clock = utc_now) -> None:
        super().__init__(storage, clock=clock)
        self.fetch_closes = closes_fetcher

    def symbols(self) -> List[str]:
        raise NotImplementedError

    def _refresh_quotes(self) -> None:
        if not self.cache.is_stale("last_quotes_fetch", QUOTES_REFRESH_MINUTES):
            return
        self.status = "loading"
        self.error  = None
        symbols = self.symbols()
        log.info("%s: quote refresh started - %d symbols", self.key, len(symbols))
        t0 = time.perf_counter()
        fresh = day_changes(self.fetch_closes(symbols, QUOTES_PERIOD))
        with self.cache.lock:
            # keep previous quotes for symbols that came back empty
            self.cache.state["quotes"] = {**self.cache.state["quotes"], **fresh}
        self.cache.stamp("last_quotes_fetch")
        self.cache.save()
        self.status = "ready"
        log.info("%s: quotes refreshed in %.1fs - %d/%d symbols",
                 self.key, time.perf_counter() - t0, len(fresh), len(symbols))

    def _refresh_weekly(self) -> None:
        if not self.cache.is_stale("last_weekly_fetch", WEEKLY_REFRESH_MINUTES):
            return
        symbols = self.symbols()
        fresh = week_changes(self.fetch_closes(symbols, WEEKLY_PERIOD))
        with self.cache.lock:
            self.cache.state["weekly"] = {**self.cache.state["weekly"], **fresh}
        self.cache.stamp("last_weekly_fetch")
        self.cache.save()
        log.info("%s: weekly changes refreshed - %d/%d symbols", self.key, len(fresh), len(symbols))

    def refresh(self, timeframe: str) -> None:
        try:
            self._refresh_quotes()
        except FetchError as exc:
            self._fail("quote", exc)
        if timeframe == TIMEFRAME_1W:
            try:
                self._refresh_weekly()
            except FetchError as exc:
                self._fail("weekly", exc)

    def last_updated(self) -> Optional[str]:
        with self.cache.lock:
            return self.cache.state.get("last_quotes_fetch")

    def _changes(self, symbol: str):
        with self.cache.lock:
            q = self.cache.state["quotes"].get(symbol) or {}
            w = self.cache.state["weekly"].get(symbol) or {}
        return q.get("change_1d"), w.get("change_1w")


class Sp500Service(_EquityHeatmapService):
    key = SP500_KEY

    def __init__(self, storage, profiles, closes_fetcher: ClosesFetcher = fetch_closes,
                 clock: Clock = utc_now) -> None:
        super().__init__(storage, closes_fetcher=closes_fetcher, clock=clock)
        self.profiles = profiles

    def symbols(self) -> List[str]:
        return list(SP500_SYMBOLS)

    def _refresh_market_caps(self) -> None:
        """Fetch a profile once for every symbol that has none yet."""
        missing = [s for s in self.symbols() if self.profiles.cached(s) is None]
        for symbol in missing:
            try:
                self.profiles.get_profile(symbol)
            except (RateLimitError, MissingApiKeyError) as exc:
                log.info("%s: stopping profile fetch at %s: %s", self.key, symbol, exc)
                break
            except FetchError as exc:
                log.debug("%s: profile fetch failed for %s: %s", self.key, symbol, exc)

    def refresh(self, timeframe: str) -> None:
        super().refresh(timeframe)
        self._refresh_market_caps()

    def tiles(self) -> List[Tile]:
        out = []
        for symbol in self.symbols():
            meta    = SP500_META[symbol]
            profile = self.profiles.cached(symbol) or {}
            d1, w1  = self._changes(symbol)
            out.append(Tile(
                symbol=symbol,
                weight=profile.get("market_cap_b") or meta["mkt_cap_b"],
                change_1d=d1,
                change_1w=w1,
                label=profile.get("name") or meta["name"],
                image=profile.get("logo"),
            ))
        return out


class SectorService(_EquityHeatmapService):
    key = SECTORS_KEY

    def symbols(self) -> List[str]:
        return list(SECTOR_ETFS)

    def tiles(self) -> List[Tile]:
        out = []
        for symbol, name in SECTOR_ETFS.items():
            d1, w1 = self._changes(symbol)
            out.append(Tile(symbol=symbol, weight=SECTOR_WEIGHTS.get(symbol),
                            change_1d=d1, change_1w=w1, label=name))
        return out


class CryptoService(_HeatmapService):
    key = CRYPTO_KEY
    defaults = {
        "items":      [],    # [{id, symbol, name, price, market_cap, change_1d, change_1w, logo}]
        "last_fetch": None,
    }

    def __init__(self, storage, client, clock: Clock = utc_now) -> None:
        super().__init__(storage, clock=clock)
        self.client = client

    def _fetch_markets(self) -> List[dict]:
        data = self.client.coingecko(
            "/coins/markets",
            vs_currency="usd",
            ids=",".join(CRYPTO_IDS),
            price_change_percentage="24h,7d",
            per_page=len(CRYPTO_IDS),
            page=1,
        )
        if not isinstance(data, list):
            raise FetchError("Unexpected CoinGecko payload")
        items = []
        for c in data:
            if not c.get("symbol"):
                continue
            items.append({
                "id":         c.get("id"),
                "symbol":     c["symbol"].upper(),
                "name":       c.get("name"),
                "price":      c.get("current_price"),
                "market_cap": c.get("market_cap"),
                "change_1d":  c.get("price_change_percentage_24h"),
                "change_1w":  c.get("price_change_percentage_7d_in_currency"),
                "logo":       c.get("image"),
            })
        return items

    def refresh(self, timeframe: str) -> None:
        # one call carries both timeframes
        if not self.cache.is_stale("last_fetch", CRYPTO_REFRESH_MINUTES):
            return
        self.status = "loading"
        self.error  = None
        try:
            items = self._fetch_markets()
        except FetchError as exc:
            self._fail("markets", exc)
            return
        with self.cache.lock:
            self.cache.state["items"] = items
        self.cache.stamp("last_fetch")
        self.cache.save()
        self.status = "ready"
        log.info("%s: %d coins refreshed", self.key, len(items))

    def last_updated(self) -> Optional[str]:
        with self.cache.lock:
            return self.cache.state.get("last_fetch")

    def tiles(self) -> List[Tile]:
        with self.cache.lock:
            items = list(self.cache.state["items"])
        return [
            Tile(symbol=c["symbol"], weight=c.get("market_cap"),
                 change_1d=c.get("change_1d"), change_1w=c.get("change_1w"),
                 label=c.get("name"), image=c.get("logo"))
            for c in items
        ]
