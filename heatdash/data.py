"""
heatdash.data
~~~~~~~~~~~~~
Market-data providers.

  Finnhub    - company profiles and the earnings calendar (REST, API key)
  CoinGecko  - coin market caps, prices, 24h / 7d changes (REST, demo key)
  Yahoo      - daily closes for equities and sector ETFs (yfinance batch)

Every failure surfaces as FetchError so the services have one thing to catch.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

import pandas as pd
import requests
import yfinance as yf

log = logging.getLogger(__name__)

FINNHUB_BASE   = "https://finnhub.io/api/v1"
COINGECKO_BASE = "https://api.coingecko.com/api/v3"

_HEADERS = {
    "User-Agent": "heatdash/1.0",
    "Accept": "application/json",
}


class FetchError(Exception):
    """Raised when a provider cannot deliver data."""


class RateLimitError(FetchError):
    """Provider answered HTTP 429."""


class MissingApiKeyError(FetchError):
    """Provider needs a key and none is configured."""


# ---------------------------------------------------------------------------
# REST client
# ---------------------------------------------------------------------------

class ApiClient:
    """Thin JSON client for Finnhub and CoinGecko."""

    def __init__(self, finnhub_key: Optional[str] = None, coingecko_key: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = 10) -> None:
        self.finnhub_key   = finnhub_key
        self.coingecko_key = coingecko_key
        self.session       = session or requests.Session()
        self.timeout       = timeout

    def _get_json(self, url: str, params: Optional[dict] = None,
                  headers: Optional[dict] = None):
        try:
            resp = self.session.get(url, params=params, headers={**_HEADERS, **(headers or {})},
                                    timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(f"Request to {url} failed: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitError("rate-limit")
        if not resp.ok:
            raise FetchError(f"HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(f"Invalid JSON from {url}") from exc

    def finnhub(self, path: str, **params):
        if not self.finnhub_key:
            raise MissingApiKeyError("FINNHUB_API_KEY is not configured")
        return self._get_json(f"{FINNHUB_BASE}{path}", params={**params, "token": self.finnhub_key})

    def coingecko(self, path: str, **params):
        headers = {"x-cg-demo-api-key": self.coingecko_key} if self.coingecko_key else None
        return self._get_json(f"{COINGECKO_BASE}{path}", params=params, headers=headers)


# ---------------------------------------------------------------------------
# Yahoo Finance closes
# ---------------------------------------------------------------------------

def fetch_closes(symbols: List[str], period: str = "5d") -> pd.DataFrame:
    """
    Daily closes for *symbols* as a DataFrame (one column per symbol,
    DatetimeIndex ascending).  Raises FetchError if the download fails
    or returns nothing.
    """
    try:
        data = yf.download(
            symbols, period=period, interval="1d",
            auto_adjust=True, progress=False, threads=True,
        )
    except Exception as exc:
        raise FetchError(f"yfinance download failed: {exc}") from exc

    if data is None or data.empty or "Close" not in data:
        raise FetchError(f"yfinance returned no closes for {len(symbols)} symbols")
    closes = data["Close"]
    if isinstance(closes, pd.Series):            # single symbol
        closes = closes.to_frame(name=symbols[0])
    return closes.sort_index()


def _pct(new: float, old: float) -> Optional[float]:
    if not old or math.isnan(old) or math.isnan(new):
        return None
    return round((new - old) / old * 100, 4)


def day_changes(closes: pd.DataFrame) -> Dict[str, dict]:
    """{symbol: {"price": last close, "change_1d": % vs previous close}}"""
    out: Dict[str, dict] = {}
    for symbol in closes.columns:
        vals = closes[symbol].dropna()
        if vals.empty:
            continue
        price = round(float(vals.iloc[-1]), 4)
        change = _pct(float(vals.iloc[-1]), float(vals.iloc[-2])) if len(vals) >= 2 else None
        out[str(symbol)] = {"price": price, "change_1d": change}
    return out


def week_changes(closes: pd.DataFrame, days: int = 7) -> Dict[str, dict]:
    """{symbol: {"change_1w": % of last close vs first close in the trailing *days*}}"""
    out: Dict[str, dict] = {}
    for symbol in closes.columns:
        vals = closes[symbol].dropna()
        if len(vals) < 2:
            continue
        window = vals[vals.index >= vals.index[-1] - pd.Timedelta(days=days)]
        if len(window) < 2:
            continue
        change = _pct(float(window.iloc[-1]), float(window.iloc[0]))
        if change is not None:
            out[str(symbol)] = {"change_1w": change}
    return out
