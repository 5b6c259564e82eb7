from __future__ import annotations

from datetime import datetime, timedelta

import pandas as pd
import pytest

from heatdash.cache import MemoryStorage
from heatdash.data import FetchError, MissingApiKeyError
from heatdash.timeutil import EST


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeClient:
    """Stands in for ApiClient; responses are keyed by path."""

    def __init__(self, finnhub=None, coingecko=None) -> None:
        self.finnhub_responses   = finnhub or {}
        self.coingecko_responses = coingecko or {}
        self.calls = []

    def _answer(self, responses, path, params):
        self.calls.append((path, params))
        if path not in responses:
            raise MissingApiKeyError("no key in tests")
        resp = responses[path]
        if isinstance(resp, Exception):
            raise resp
        return resp(params) if callable(resp) else resp

    def finnhub(self, path, **params):
        return self._answer(self.finnhub_responses, path, params)

    def coingecko(self, path, **params):
        return self._answer(self.coingecko_responses, path, params)


class FakeProfiles:
    def __init__(self, profiles=None) -> None:
        self.profiles  = dict(profiles or {})
        self.requested = []

    def cached(self, symbol):
        return self.profiles.get(symbol)

    def get_profile(self, symbol):
        self.requested.append(symbol)
        if symbol in self.profiles:
            return self.profiles[symbol]
        raise FetchError(f"no profile for {symbol}")


class FakeCloses:
    """closes_fetcher replacement: flat at 100 for a week, then *last* on the final day."""

    def __init__(self, last: float = 102.0, days: int = 8) -> None:
        self.last  = last
        self.days  = days
        self.calls = []
        self.error = None

    def __call__(self, symbols, period):
        self.calls.append((tuple(symbols), period))
        if self.error:
            raise self.error
        index = pd.date_range("2025-11-10", periods=self.days, freq="D")
        values = [100.0] * (self.days - 1) + [self.last]
        return pd.DataFrame({s: values for s in symbols}, index=index)


@pytest.fixture
def clock():
    # Wednesday 19 Nov 2025, 10:00 ET
    return FakeClock(datetime(2025, 11, 19, 10, 0, tzinfo=EST))


@pytest.fixture
def storage():
    return MemoryStorage()
