"""
Shared pytest fixtures for the price proxy tests.
"""

import asyncio
import random
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from price_engine.adapters.base import SourceAdapter, change_from_percent
from price_engine.cache.response_cache import ResponseCache
from price_engine.config import Settings
from price_engine.models.market_payload import Candle, CandleSeries, PriceQuote
from price_engine.routing.timeframes import HOUR


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


def closes_to_candles(closes: Sequence[float], interval_s: int = HOUR,
                      end_ms: int = 1_700_000_000_000) -> Tuple[Candle, ...]:
    interval = interval_s * 1000
    start = end_ms - (len(closes) - 1) * interval
    candles, prev = [], closes[0]
    for i, close in enumerate(closes):
        candles.append(Candle(start + i * interval, prev, max(prev, close) * 1.001,
                              min(prev, close) * 0.999, close))
        prev = close
    return tuple(candles)


class FakeAdapter(SourceAdapter):
    """
    Adapter with canned answers. Every _fetch_* call is appended to `calls`
    so tests can assert order and count.

      quotes:  {symbol: (price, pct_change)}
      series:  {symbol: [close, close, ...]}
      error:   exception raised from every fetch
      delay:   seconds to sleep before answering
    """

    def __init__(self, source: str, route_field: str,
                 quotes: Optional[Dict[str, Tuple[float, float]]] = None,
                 series: Optional[Dict[str, List[float]]] = None,
                 error: Optional[Exception] = None,
                 delay: float = 0.0,
                 available: bool = True,
                 calls: Optional[list] = None):
        super().__init__()
        self._source     = source
        self.route_field = route_field
        self.quotes      = quotes or {}
        self.series      = series or {}
        self.error       = error
        self.delay       = delay
        self.available   = available
        self.calls       = calls if calls is not None else []

    @property
    def name(self) -> str:
        return self._source

    def is_available(self) -> bool:
        return self.available

    async def _fetch_price(self, client, route, ident):
        self.calls.append((self.name, "price", route.symbol))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if route.symbol not in self.quotes:
            return None
        price, pct = self.quotes[route.symbol]
        return PriceQuote(route.symbol, price, change_from_percent(price, pct), pct,
                          1000.0, 0.0, self.name)

    async def _fetch_candles(self, client, route, ident, timeframe):
        self.calls.append((self.name, "chart", route.symbol, timeframe.token))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        closes = self.series.get(route.symbol)
        if not closes:
            return None
        return CandleSeries(route.symbol, timeframe.token,
                            closes_to_candles(closes, timeframe.interval_seconds), self.name)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def calls():
    """Shared call log for every fake adapter in a test."""
    return []


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def cache(fake_clock):
    return ResponseCache(clock=fake_clock)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def settings():
    return Settings(
        sentiment_jitter   = 0.0,
        ws_poll_interval_s = 0.05,
        upstream_retries   = 1,
        adapter_timeout_s  = 1.0,
    )


@pytest.fixture
def btc_trend():
    """24 hourly closes from 120000 up to 122000."""
    return [120000 + i * (2000 / 23) for i in range(24)]


@pytest.fixture
def make_adapters(calls):
    """
    Build the standard four-slot chain with canned data:
        make_adapters(cryptocompare={"quotes": {...}}, coingecko={"error": ...})
    Slots left out answer nothing (every call is a failure).
    """
    def _make(**slots):
        order = ["cryptocompare", "birdeye", "dexscreener", "coingecko"]
        return [FakeAdapter(name, name, calls=calls, **slots.get(name, {})) for name in order]
    return _make
