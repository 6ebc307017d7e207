"""
CyberDash — Proxy Client
─────────────────────────
What the dashboard does on its side of the proxy, for Python consumers
(scripts, notebooks, the test suite).

Keeps its own 60s cache, separate from the server's; nothing is shared
between the two layers. The client degrades instead of raising:

  price    fresh local cache → proxy → expired local cache → static seed
  chart    fresh local cache → proxy → synthetic walk around the best known price
  gauge    proxy → static (75, "Greed") placeholder
  ticker   proxy /market-prices → per-symbol price() above

Only an unknown symbol raises (UnsupportedSymbol), since there is nothing
sensible to show for it. Symbol routing comes from the same table the
server uses.
"""

import asyncio
import logging
import random
from typing import List, Optional

import httpx

from price_engine.cache.response_cache import ResponseCache, chart_key, price_key
from price_engine.errors import UnsupportedSymbol
from price_engine.models.market_payload import (
    Candle, CandleSeries, MarketTicker, PriceQuote, SentimentScore, now_ms,
)
from price_engine.orchestrator.synthetic import SYNTHETIC_LIVE, SYNTHETIC_STATIC, synthetic_quote, synthetic_series
from price_engine.routing.symbols import SymbolRoute, get_route
from price_engine.routing.timeframes import resolve_timeframe

log = logging.getLogger("cd.client")

CLIENT_CACHE_TTL = 60
CLIENT_TIMEOUT   = 10.0

PLACEHOLDER_SENTIMENT = (75, "Greed")

MARKET_SYMBOLS = ["BTC/USD", "ETH/USD", "BNB/USD", "FOUR"]


class ProxyClient:

    def __init__(self, base_url: str = "http://localhost:8000",
                 client: Optional[httpx.AsyncClient] = None,
                 cache_ttl_s: int = CLIENT_CACHE_TTL,
                 cache: Optional[ResponseCache] = None,
                 rng: Optional[random.Random] = None):
        self.base_url = base_url.rstrip("/")
        self._client  = client
        self._owns    = client is None
        self.cache    = cache or ResponseCache(ttls={"price": cache_ttl_s, "chart": cache_ttl_s})
        self.rng      = rng

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        if self._owns and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=CLIENT_TIMEOUT)
            self._owns   = True
        return self._client

    def _route(self, symbol: str) -> SymbolRoute:
        route = get_route(symbol)
        if route is None:
            raise UnsupportedSymbol(symbol)
        return route

    async def _get(self, path: str, params: dict = None) -> Optional[httpx.Response]:
        try:
            r = await self._http().get(f"{self.base_url}{path}", params=params)
        except httpx.HTTPError as e:
            log.warning(f"Proxy unreachable for {path}: {e}")
            return None
        if r.status_code == 400:
            raise UnsupportedSymbol((params or {}).get("symbol", ""))
        if r.status_code != 200:
            log.warning(f"Proxy returned {r.status_code} for {path}")
            return None
        return r

    # ── Price ─────────────────────────────────────────────────

    async def price(self, symbol: str) -> PriceQuote:
        route = self._route(symbol)
        key   = price_key(route.symbol)

        entry = self.cache.get(key)
        if entry:
            return entry.payload

        r = await self._get("/api/crypto/price", {"symbol": route.symbol})
        if r is not None:
            try:
                quote = PriceQuote.from_dict({"symbol": route.symbol, **r.json()})
            except (ValueError, TypeError) as e:
                log.warning(f"Bad price body for {route.symbol}: {e}")
            else:
                if quote.current_price > 0:
                    self.cache.put(key, quote, quote.source_id)
                    return quote

        stale = self.cache.get_stale(key)
        if stale:
            log.info(f"Using expired cache for {route.symbol}: ${stale.payload.current_price}")
            return stale.payload

        log.info(f"Using static price for {route.symbol}: ${route.seed_price}")
        return synthetic_quote(route)

    # ── Chart ─────────────────────────────────────────────────

    async def candles(self, symbol: str, timeframe: Optional[str] = None) -> CandleSeries:
        route = self._route(symbol)
        tf    = resolve_timeframe(timeframe)
        key   = chart_key(route.symbol, tf.token)

        entry = self.cache.get(key)
        if entry:
            return entry.payload

        r = await self._get("/api/crypto/chart", {"symbol": route.symbol, "timeframe": tf.token})
        if r is not None:
            try:
                candles = tuple(
                    Candle(int(c["timestamp"]), float(c["open"]), float(c["high"]),
                           float(c["low"]), float(c["close"]))
                    for c in r.json()
                )
            except (ValueError, KeyError, TypeError) as e:
                log.warning(f"Bad chart body for {route.symbol}: {e}")
                candles = ()
            if candles:
                series = CandleSeries(
                    symbol    = route.symbol,
                    timeframe = tf.token,
                    candles   = candles,
                    source_id = r.headers.get("X-Chart-Source", "proxy"),
                    synthetic = r.headers.get("X-Chart-Synthetic") == "true",
                )
                self.cache.put(key, series, series.source_id)
                return series

        known = self.cache.get_stale(price_key(route.symbol))
        if known:
            seed, source = known.payload.current_price, SYNTHETIC_LIVE
        else:
            seed, source = route.seed_price, SYNTHETIC_STATIC
        log.info(f"Generating {source} chart for {route.symbol} around ${seed}")
        return synthetic_series(route, tf, seed, source_id=source, rng=self.rng)

    # ── Sentiment ─────────────────────────────────────────────

    async def fear_greed(self) -> SentimentScore:
        r = await self._get("/api/crypto/fear-greed")
        if r is not None:
            try:
                body = r.json()
                return SentimentScore(
                    value          = int(body["value"]),
                    classification = body["classification"],
                    computed_at_ms = int(body.get("timestamp") or now_ms()),
                    calculation    = body.get("calculation") or {},
                )
            except (ValueError, KeyError, TypeError) as e:
                log.warning(f"Bad fear-greed body: {e}")
        value, label = PLACEHOLDER_SENTIMENT
        return SentimentScore(value=value, classification=label)

    # ── Ticker strip ──────────────────────────────────────────

    async def market_prices(self) -> List[MarketTicker]:
        r = await self._get("/api/crypto/market-prices")
        if r is not None:
            try:
                return [
                    MarketTicker(t["symbol"], float(t["price"]), float(t["change"]),
                                 t.get("source", "proxy"))
                    for t in r.json()["data"]
                ]
            except (ValueError, KeyError, TypeError) as e:
                log.warning(f"Bad market-prices body: {e}")

        quotes = await asyncio.gather(*[self.price(s) for s in MARKET_SYMBOLS])
        return [MarketTicker(q.symbol, q.current_price, q.change_24h_percent, q.source_id)
                for q in quotes]
