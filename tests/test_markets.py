import math

import pandas as pd
import pytest

from heatdash.data import FetchError, day_changes, week_changes
from heatdash.markets import CryptoService, SectorService, Sp500Service
from heatdash.profiles import ProfileService
from heatdash.treemap import build_heatmap
from heatdash.universe import SECTOR_ETFS, SP500_SYMBOLS

from conftest import FakeClient, FakeCloses, FakeProfiles

COINS = [
    {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "current_price": 90000,
     "market_cap": 1.8e12, "price_change_percentage_24h": 3.5,
     "price_change_percentage_7d_in_currency": -6.1, "image": "https://img/btc.png"},
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum", "current_price": 3000,
     "market_cap": 3.6e11, "price_change_percentage_24h": None,
     "price_change_percentage_7d_in_currency": 1.2, "image": None},
]


# ---------------------------------------------------------------------------
# close-based changes
# ---------------------------------------------------------------------------

def test_day_and_week_changes():
    index = pd.date_range("2025-11-07", periods=10, freq="D")
    closes = pd.DataFrame({
        "AAA": [50.0, 100, 100, 100, 100, 100, 100, 100, 110, 121],
        "BBB": [float("nan")] * 9 + [10.0],
    }, index=index)
    d = day_changes(closes)
    assert d["AAA"]["price"] == 121.0
    assert math.isclose(d["AAA"]["change_1d"], 10.0)
    assert d["BBB"] == {"price": 10.0, "change_1d": None}

    w = week_changes(closes)
    # window starts 7 days before the last close (2025-11-09 -> 100)
    assert math.isclose(w["AAA"]["change_1w"], 21.0)
    assert "BBB" not in w


# ---------------------------------------------------------------------------
# sectors
# ---------------------------------------------------------------------------

def test_sector_daily_refresh(storage, clock):
    closes = FakeCloses(last=102.0)
    svc = SectorService(storage, closes_fetcher=closes, clock=clock)
    data = svc.get_data("1D")
    assert closes.calls == [(tuple(SECTOR_ETFS), "5d")]
    assert data["status"] == "ready" and data["error"] is None
    tiles = {t.symbol: t for t in data["tiles"]}
    assert len(tiles) == 11
    assert math.isclose(tiles["XLK"].change_1d, 2.0)
    assert tiles["XLK"].change_1w is None          # weekly only fetched for 1W
    assert tiles["XLK"].label == "Technology"
    assert tiles["XLK"].weight == 34.0


def test_sector_refresh_cadence(storage, clock):
    closes = FakeCloses()
    svc = SectorService(storage, closes_fetcher=closes, clock=clock)
    svc.get_data("1D")
    clock.advance(minutes=9)
    svc.get_data("1D")
    assert len(closes.calls) == 1
    clock.advance(minutes=2)
    svc.get_data("1D")
    assert len(closes.calls) == 2


def test_sector_weekly_fetch(storage, clock):
    closes = FakeCloses(last=95.0)
    svc = SectorService(storage, closes_fetcher=closes, clock=clock)
    tiles = {t.symbol: t for t in svc.get_data("1W")["tiles"]}
    assert [c[1] for c in closes.calls] == ["5d", "1mo"]
    assert math.isclose(tiles["XLE"].change_1w, -5.0)
    svc.get_data("1W")
    assert len(closes.calls) == 2


def test_failed_refresh_keeps_last_known_good(storage, clock):
    closes = FakeCloses(last=102.0)
    svc = SectorService(storage, closes_fetcher=closes, clock=clock)
    first = svc.get_data("1D")
    clock.advance(minutes=15)
    closes.error = FetchError("yfinance download failed: timeout")
    data = svc.get_data("1D")
    assert data["status"] == "error"
    assert "timeout" in data["error"]
    assert data["last_updated"] == first["last_updated"]
    assert math.isclose(data["tiles"][0].change_1d, 2.0)


def test_snapshot_reloaded_from_storage(storage, clock):
    SectorService(storage, closes_fetcher=FakeCloses(), clock=clock).get_data("1D")
    closes = FakeCloses()
    again = SectorService(storage, closes_fetcher=closes, clock=clock)
    data = again.get_data("1D")
    assert closes.calls == []
    assert data["last_updated"] is not None


def test_reset_forgets_snapshot(storage, clock):
    svc = SectorService(storage, closes_fetcher=FakeCloses(), clock=clock)
    svc.get_data("1D")
    svc.reset()
    assert svc.last_updated() is None
    assert all(t.change_1d is None for t in svc.tiles())


# ---------------------------------------------------------------------------
# S&P 500
# ---------------------------------------------------------------------------

def test_sp500_prefers_profile_caps(storage, clock):
    profiles = FakeProfiles({"AAPL": {"name": "Apple Inc", "logo": "https://x/aapl.png", "market_cap_b": 3900.0}})
    svc = Sp500Service(storage, profiles, closes_fetcher=FakeCloses(), clock=clock)
    tiles = {t.symbol: t for t in svc.get_data("1D")["tiles"]}
    assert len(tiles) == len(SP500_SYMBOLS)
    assert tiles["AAPL"].weight == 3900.0
    assert tiles["AAPL"].label == "Apple Inc"
    assert tiles["AAPL"].image == "https://x/aapl.png"
    assert tiles["MSFT"].weight == 3000          # static fallback
    assert tiles["MSFT"].image is None
    # one profile attempt per symbol without a cached profile
    assert "AAPL" not in profiles.requested
    assert "MSFT" in profiles.requested


def test_sp500_stops_profile_fetch_without_api_key(storage, clock):
    client = FakeClient()          # every Finnhub call -> MissingApiKeyError
    profiles = ProfileService(client, storage, clock=clock)
    svc = Sp500Service(storage, profiles, closes_fetcher=FakeCloses(), clock=clock)
    data = svc.get_data("1D")
    assert len(client.calls) == 1
    assert data["status"] == "ready"
    assert len(build_heatmap(data["tiles"], "1D")) == len(SP500_SYMBOLS)


# ---------------------------------------------------------------------------
# crypto
# ---------------------------------------------------------------------------

def test_crypto_tiles(storage, clock):
    client = FakeClient(coingecko={"/coins/markets": COINS})
    svc = CryptoService(storage, client, clock=clock)
    data = svc.get_data("1D")
    path, params = client.calls[0]
    assert path == "/coins/markets"
    assert params["price_change_percentage"] == "24h,7d"
    btc, eth = data["tiles"]
    assert (btc.symbol, btc.label, btc.image) == ("BTC", "Bitcoin", "https://img/btc.png")
    assert btc.change_1d == 3.5 and btc.change_1w == -6.1

    rendered = {t.symbol: t for t in build_heatmap(data["tiles"], "1D")}
    assert rendered["BTC"].bucket == "strong-positive"
    assert rendered["ETH"].display_value == 1.2     # falls back to 7d


def test_crypto_cadence_and_errors(storage, clock):
    client = FakeClient(coingecko={"/coins/markets": COINS})
    svc = CryptoService(storage, client, clock=clock)
    svc.get_data("1W")
    clock.advance(minutes=4)
    svc.get_data("1W")
    assert len(client.calls) == 1

    clock.advance(minutes=2)
    client.coingecko_responses["/coins/markets"] = {"status": {"error_code": 429}}
    data = svc.get_data("1W")
    assert data["status"] == "error"
    assert len(data["tiles"]) == 2


@pytest.mark.parametrize("raw_cap, expected", [(3_900_000, 3900.0), (None, None), (0, None)])
def test_profile_service(storage, clock, raw_cap, expected):
    client = FakeClient(finnhub={"/stock/profile2": {"name": "Apple Inc", "logo": "static.finnhub.io/aapl.png",
                                                     "marketCapitalization": raw_cap}})
    svc = ProfileService(client, storage, clock=clock)
    p = svc.get_profile("aapl")
    assert p["symbol"] == "AAPL"
    assert p["logo"] == "https://static.finnhub.io/aapl.png"
    assert p["market_cap_b"] == expected
    svc.get_profile("AAPL")
    assert len(client.calls) == 1
    clock.advance(days=8)
    svc.get_profile("AAPL")
    assert len(client.calls) == 2
