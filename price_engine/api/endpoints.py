"""
CyberDash — Price Service
──────────────────────────
What the HTTP routes call. One PriceService is built per app at startup
and holds the cache, resolver and sentiment estimator; nothing here is
module-level state.

  price(symbol)            cache → resolver → cache            (30s)
  chart(symbol, tf)        cache → resolver/synthetic → cache  (5 min)
  market_prices()          resolver only, never cached
  fear_greed()             basket through price(); never raises
  symbols()                routing table for client mirrors

Route handlers in app.py only add headers and status codes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from price_engine.cache.response_cache import ResponseCache, chart_key, price_key
from price_engine.errors import PriceEngineError
from price_engine.models.market_payload import CandleSeries, MarketTicker, PriceQuote, now_ms
from price_engine.orchestrator.resolver import FallbackResolver
from price_engine.orchestrator.sentiment import NEUTRAL, SentimentEstimator
from price_engine.orchestrator.synthetic import SYNTHETIC_STATIC
from price_engine.routing.symbols import SYMBOLS
from price_engine.routing.timeframes import TIMEFRAMES, resolve_timeframe

log = logging.getLogger("cd.api")

MARKET_SYMBOLS = ["BTC/USD", "ETH/USD", "BNB/USD", "FOUR"]

# Shown when a ticker member (or the whole handler) cannot be fetched
STATIC_MARKET: List[MarketTicker] = [
    MarketTicker("BTC/USD", 117500.0,   3.55,  SYNTHETIC_STATIC),
    MarketTicker("ETH/USD", 4112.48,    2.44,  SYNTHETIC_STATIC),
    MarketTicker("BNB/USD", 650.0,      0.85,  SYNTHETIC_STATIC),
    MarketTicker("FOUR",    0.00703518, 31.33, SYNTHETIC_STATIC),
]
_STATIC_BY_SYMBOL = {t.symbol: t for t in STATIC_MARKET}


@dataclass(frozen=True)
class Served:
    """A payload plus where it came from, for the provenance headers."""
    payload:   Union[PriceQuote, CandleSeries]
    source_id: str
    cache_hit: bool

    @property
    def synthetic(self) -> bool:
        return bool(getattr(self.payload, "synthetic", False))


class PriceService:

    def __init__(self, resolver: FallbackResolver, cache: ResponseCache,
                 estimator: Optional[SentimentEstimator] = None):
        self.resolver  = resolver
        self.cache     = cache
        self.estimator = estimator or SentimentEstimator()

    # ── Price ─────────────────────────────────────────────────

    async def price(self, symbol: str) -> Served:
        route = self.resolver.route_for(symbol)
        key   = price_key(route.symbol)

        entry = self.cache.get(key)
        if entry:
            log.debug(f"{key}: cache hit ({entry.source_id})")
            return Served(entry.payload, entry.source_id, cache_hit=True)

        quote = await self.resolver.resolve_price(route.symbol)
        self.cache.put(key, quote, quote.source_id)
        return Served(quote, quote.source_id, cache_hit=False)

    async def quote(self, symbol: str) -> PriceQuote:
        return (await self.price(symbol)).payload

    # ── Chart ─────────────────────────────────────────────────

    async def chart(self, symbol: str, timeframe: Optional[str] = None) -> Served:
        route = self.resolver.route_for(symbol)
        tf    = resolve_timeframe(timeframe)
        if timeframe and tf.token != timeframe:
            log.info(f"Timeframe {timeframe!r} served as {tf.token}")
        key = chart_key(route.symbol, tf.token)

        entry = self.cache.get(key)
        if entry:
            log.debug(f"{key}: cache hit ({entry.source_id}, {len(entry.payload)} candles)")
            return Served(entry.payload, entry.source_id, cache_hit=True)

        series = await self.resolver.resolve_candles(route.symbol, tf)
        self.cache.put(key, series, series.source_id)
        return Served(series, series.source_id, cache_hit=False)

    # ── Market ticker ─────────────────────────────────────────

    async def _ticker(self, symbol: str) -> Optional[MarketTicker]:
        try:
            quote = await self.resolver.resolve_price(symbol)
        except PriceEngineError as e:
            log.warning(f"[market] {symbol}: {e.message}")
            return None
        return MarketTicker(symbol, quote.current_price, quote.change_24h_percent, quote.source_id)

    async def market_prices(self) -> dict:
        """Fresh ticker strip. Members that fail are shown at their static value."""
        try:
            tickers = await asyncio.gather(*[self._ticker(s) for s in MARKET_SYMBOLS])
        except Exception:
            log.exception("Market prices failed; serving static list")
            return {
                "data":      [t.to_dict() for t in STATIC_MARKET],
                "timestamp": now_ms(),
                "fresh":     True,
                "fallback":  True,
            }

        data, fallback = [], False
        for symbol, ticker in zip(MARKET_SYMBOLS, tickers):
            if ticker is None:
                ticker, fallback = _STATIC_BY_SYMBOL[symbol], True
                log.info(f"[market] using static data for {symbol}: ${ticker.price}")
            data.append(ticker.to_dict())

        body = {"data": data, "timestamp": now_ms(), "fresh": True}
        if fallback:
            body["fallback"] = True
        return body

    # ── Sentiment ─────────────────────────────────────────────

    async def fear_greed(self) -> dict:
        try:
            score = await self.estimator.estimate(self.quote)
            return score.to_dict()
        except Exception as e:
            log.exception("Fear & greed calculation failed")
            return {
                "value":          NEUTRAL,
                "classification": "Neutral",
                "timestamp":      now_ms(),
                "error":          True,
                "message":        str(e),
            }

    # ── Routing table ─────────────────────────────────────────

    def symbols(self) -> dict:
        return {
            "symbols":    [route.to_dict() for route in SYMBOLS.values()],
            "timeframes": {
                token: {"interval": tf.interval_seconds, "count": tf.count}
                for token, tf in TIMEFRAMES.items()
            },
            "default_timeframe": resolve_timeframe(None).token,
        }
