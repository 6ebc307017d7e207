"""
CyberDash — Fallback Chain Resolver
────────────────────────────────────
Turns (symbol, operation) into an ordered adapter chain and walks it until
one adapter answers.

  resolve_price()    chain exhausted → ChainExhausted (502 upstream)
  resolve_candles()  chain exhausted → synthetic series, never an error

The resolver knows adapters only by position and applies_to(); it never
branches on which concrete adapter it holds. Unknown symbols raise
UnsupportedSymbol before a single adapter is touched.

Every attempt is capped with asyncio.wait_for so one slow upstream cannot
hold the whole chain. Concurrent misses for the same key share one
in-flight task when coalescing is on.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Sequence

import httpx

from price_engine.adapters.base import SourceAdapter
from price_engine.errors import ChainExhausted, UnsupportedSymbol
from price_engine.models.market_payload import CandleSeries, FetchResult, PriceQuote
from price_engine.orchestrator.synthetic import SYNTHETIC_LIVE, SYNTHETIC_STATIC, synthetic_series
from price_engine.routing.symbols import SymbolRoute, get_route, normalise_symbol
from price_engine.routing.timeframes import Timeframe

log = logging.getLogger("cd.resolver")

ADAPTER_TIMEOUT = 5.0


class FallbackResolver:

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        client:   Optional[httpx.AsyncClient] = None,
        timeout:  float = ADAPTER_TIMEOUT,
        coalesce: bool = True,
        rng:      Optional[random.Random] = None,
    ):
        self.adapters    = list(adapters)
        self.client      = client
        self.timeout     = timeout
        self.coalesce    = coalesce
        self.rng         = rng
        self._last_known: Dict[str, PriceQuote] = {}
        self._in_flight:  Dict[Hashable, asyncio.Future] = {}

    # ── Routing ───────────────────────────────────────────────

    def route_for(self, symbol: str) -> SymbolRoute:
        route = get_route(symbol)
        if route is None:
            log.warning(f"Unmapped symbol requested: {symbol}")
            raise UnsupportedSymbol(normalise_symbol(symbol) or symbol)
        return route

    def chain_for(self, symbol: str) -> List[SourceAdapter]:
        route = self.route_for(symbol)
        return [a for a in self.adapters if a.applies_to(route)]

    def last_known(self, symbol: str) -> Optional[PriceQuote]:
        return self._last_known.get(normalise_symbol(symbol))

    # ── Attempts ──────────────────────────────────────────────

    async def _attempt(self, adapter: SourceAdapter, call: Awaitable[FetchResult]) -> FetchResult:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            return FetchResult.failure(adapter.name, f"no answer within {self.timeout}s")

    def _finished(self, key: Hashable, task: asyncio.Future):
        self._in_flight.pop(key, None)
        # Marks the error retrieved even when every awaiter was cancelled
        if not task.cancelled() and task.exception() is not None:
            log.debug(f"In-flight request for {key} failed: {task.exception()}")

    async def _coalesced(self, key: Hashable, factory: Callable[[], Awaitable]):
        if not self.coalesce:
            return await factory()
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._finished(key, t))
        else:
            log.debug(f"Joining in-flight request for {key}")
        return await asyncio.shield(task)

    # ── Price ─────────────────────────────────────────────────

    async def resolve_price(self, symbol: str) -> PriceQuote:
        route = self.route_for(symbol)
        return await self._coalesced(("price", route.symbol), lambda: self._walk_price(route))

    async def _walk_price(self, route: SymbolRoute) -> PriceQuote:
        failures: List[str] = []
        for adapter in self.adapters:
            if not adapter.applies_to(route):
                continue
            result = await self._attempt(adapter, adapter.price(self.client, route))
            if result.ok:
                log.info(f"[price] {adapter.name} success for {route.symbol}: ${result.data.current_price}")
                self._last_known[route.symbol] = result.data
                return result.data
            log.warning(f"[price] {adapter.name} failed for {route.symbol}: {result.error}")
            failures.append(f"{adapter.name}: {result.error}")

        log.error(f"[price] all sources failed for {route.symbol} ({len(failures)} tried)")
        raise ChainExhausted(route.symbol, "price", failures)

    # ── Chart ─────────────────────────────────────────────────

    async def resolve_candles(self, symbol: str, timeframe: Timeframe) -> CandleSeries:
        route = self.route_for(symbol)
        return await self._coalesced(("chart", route.symbol, timeframe.token),
                                     lambda: self._walk_candles(route, timeframe))

    async def _walk_candles(self, route: SymbolRoute, timeframe: Timeframe) -> CandleSeries:
        for adapter in self.adapters:
            if not adapter.applies_to(route):
                continue
            result = await self._attempt(adapter, adapter.candles(self.client, route, timeframe))
            if result.ok:
                log.info(f"[chart] {adapter.name} returned {len(result.data)} candles "
                         f"for {route.symbol} {timeframe.token}")
                return result.data
            log.warning(f"[chart] {adapter.name} failed for {route.symbol} {timeframe.token}: {result.error}")

        return await self._synthetic_candles(route, timeframe)

    async def _synthetic_candles(self, route: SymbolRoute, timeframe: Timeframe) -> CandleSeries:
        seed   = self._last_known.get(route.symbol)
        source = SYNTHETIC_LIVE
        if seed is None:
            try:
                seed = await self._walk_price(route)
            except ChainExhausted:
                seed = None
        if seed is not None:
            price = seed.current_price
        else:
            price  = route.seed_price
            source = SYNTHETIC_STATIC

        log.warning(f"[chart] all sources failed for {route.symbol} {timeframe.token}; "
                    f"generating {source} series around ${price}")
        return synthetic_series(route, timeframe, price, source_id=source, rng=self.rng)
