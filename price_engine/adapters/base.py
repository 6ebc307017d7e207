"""
CyberDash — Source Adapter Base
────────────────────────────────
All upstream adapters inherit from SourceAdapter.

Each adapter knows one third-party API and produces canonical shapes:
  price()    -> FetchResult(data=PriceQuote)
  candles()  -> FetchResult(data=CandleSeries)

Subclasses must implement:
  - name: str property (provenance id, also the rate-limit bucket)
  - route_field: which SymbolRoute identifier this adapter reads
  - _fetch_price(client, route, ident) -> PriceQuote | None
  - _fetch_candles(client, route, ident, timeframe) -> CandleSeries | None

The public price()/candles() methods handle mapping lookup, rate limiting
and error capture. Nothing raised inside _fetch_* escapes: it comes back
as a failed FetchResult with the cause, so the resolver can move on.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

import httpx

from price_engine.adapters.http import RETRY_ATTEMPTS, REQUEST_TIMEOUT, get_json
from price_engine.errors import UpstreamFailure
from price_engine.models.market_payload import Candle, CandleSeries, FetchResult, PriceQuote
from price_engine.orchestrator.rate_limiter import RateLimiter
from price_engine.routing.symbols import SymbolRoute
from price_engine.routing.timeframes import Timeframe

log = logging.getLogger("cd.adapters")


def change_from_percent(price: float, pct: float) -> float:
    """Absolute 24h move implied by the current price and a percent change."""
    if not price or pct <= -100:
        return 0.0
    return price - price / (1 + pct / 100)


def as_float(value, default: float = 0.0) -> float:
    """Upstreams send numbers, numeric strings or null; normalise all three."""
    if value is None or value == "":
        return default
    return float(value)


def ordered_candles(candles: Iterable[Candle], limit: Optional[int] = None) -> Tuple[Candle, ...]:
    """Sort by time, drop duplicate timestamps, keep the newest `limit` bars."""
    seen = set()
    out: List[Candle] = []
    for c in sorted(candles, key=lambda c: c.timestamp_ms):
        if c.timestamp_ms in seen:
            continue
        seen.add(c.timestamp_ms)
        out.append(c)
    if limit:
        out = out[-limit:]
    return tuple(out)


class SourceAdapter(ABC):

    route_field: str = ""

    def __init__(self, limiter: Optional[RateLimiter] = None,
                 attempts: int = RETRY_ATTEMPTS,
                 timeout: float = REQUEST_TIMEOUT):
        self.limiter  = limiter
        self.attempts = attempts
        self.timeout  = timeout

    @property
    @abstractmethod
    def name(self) -> str: ...

    def is_available(self) -> bool:
        """False when the adapter needs a credential that is not configured."""
        return True

    def identifier(self, route: SymbolRoute) -> Optional[str]:
        return route.identifier(self.route_field)

    def applies_to(self, route: SymbolRoute) -> bool:
        return self.is_available() and bool(self.identifier(route))

    @abstractmethod
    async def _fetch_price(self, client: httpx.AsyncClient, route: SymbolRoute,
                           ident: str) -> Optional[PriceQuote]: ...

    @abstractmethod
    async def _fetch_candles(self, client: httpx.AsyncClient, route: SymbolRoute,
                             ident: str, timeframe: Timeframe) -> Optional[CandleSeries]: ...

    async def _get(self, client: httpx.AsyncClient, url: str,
                   params: dict = None, headers: dict = None):
        return await get_json(client, self.name, url, params=params, headers=headers,
                              attempts=self.attempts, timeout=self.timeout)

    def _precheck(self, route: SymbolRoute) -> Optional[str]:
        if not self.is_available():
            return "not configured"
        if not self.identifier(route):
            return f"no {self.route_field} mapping"
        if self.limiter and not self.limiter.try_acquire(self.name):
            return "rate limited locally"
        return None

    async def price(self, client: httpx.AsyncClient, route: SymbolRoute) -> FetchResult:
        """Public entry point. Never raises."""
        reason = self._precheck(route)
        if reason:
            return FetchResult.failure(self.name, reason)
        try:
            quote = await self._fetch_price(client, route, self.identifier(route))
        except UpstreamFailure as e:
            return FetchResult.failure(self.name, e.reason)
        except Exception as e:
            log.warning(f"{self.name} price parse failed for {route.symbol}: {e}")
            return FetchResult.failure(self.name, f"malformed payload ({type(e).__name__}: {e})")
        if quote is None:
            return FetchResult.failure(self.name, "no price in response")
        if quote.current_price <= 0:
            return FetchResult.failure(self.name, f"non-positive price {quote.current_price}")
        return FetchResult.success(self.name, quote)

    async def candles(self, client: httpx.AsyncClient, route: SymbolRoute,
                      timeframe: Timeframe) -> FetchResult:
        """Public entry point. Never raises."""
        reason = self._precheck(route)
        if reason:
            return FetchResult.failure(self.name, reason)
        try:
            series = await self._fetch_candles(client, route, self.identifier(route), timeframe)
        except UpstreamFailure as e:
            return FetchResult.failure(self.name, e.reason)
        except Exception as e:
            log.warning(f"{self.name} chart parse failed for {route.symbol}: {e}")
            return FetchResult.failure(self.name, f"malformed payload ({type(e).__name__}: {e})")
        if series is None or not series.candles:
            return FetchResult.failure(self.name, "no candles in response")
        return FetchResult.success(self.name, series)
