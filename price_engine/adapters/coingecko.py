"""
CyberDash — CoinGecko Adapter
──────────────────────────────
Broadest coverage, tightest free quota, so it sits last in every chain.

  price:  /simple/price?ids=<id>&vs_currencies=usd&include_24hr_change…
  chart:  /coins/<id>/market_chart?vs_currency=usd&days=N

market_chart returns price points, not bars. Points are bucketed onto the
timeframe's interval and each bucket becomes one OHLC candle.

Point spacing depends on the window: 5 minutes for 1 day, hourly up to
90 days, daily beyond. A timeframe finer than that spacing (1m) cannot be
built from these points, so it fails without a request and the chain
moves on.
"""

import logging
from typing import Dict, List, Optional

import httpx

from price_engine.adapters.base import SourceAdapter, as_float, change_from_percent, ordered_candles
from price_engine.config import COINGECKO_BASE_URL
from price_engine.errors import UpstreamFailure
from price_engine.models.market_payload import Candle, CandleSeries, PriceQuote
from price_engine.routing.symbols import SymbolRoute
from price_engine.routing.timeframes import DAY, HOUR, MINUTE, Timeframe

log = logging.getLogger("cd.adapters.coingecko")


def point_spacing(days: int) -> int:
    """Seconds between market_chart points for a `days` window."""
    if days <= 1:
        return 5 * MINUTE
    if days <= 90:
        return HOUR
    return DAY


def bucket_points(points: list, interval_ms: int) -> List[Candle]:
    """[[ms, price], ...] → one candle per interval bucket, oldest first."""
    buckets: Dict[int, List[float]] = {}
    for point in points:
        if not point or len(point) < 2 or point[1] is None:
            continue
        ts, price = int(point[0]), float(point[1])
        if price <= 0:
            continue
        buckets.setdefault(ts - ts % interval_ms, []).append(price)

    return [
        Candle(
            timestamp_ms = start,
            open         = prices[0],
            high         = max(prices),
            low          = min(prices),
            close        = prices[-1],
        )
        for start, prices in sorted(buckets.items())
    ]


class CoinGeckoAdapter(SourceAdapter):

    route_field = "coingecko"

    def __init__(self, api_key: Optional[str] = None, base_url: str = COINGECKO_BASE_URL, **kw):
        super().__init__(**kw)
        self.api_key  = api_key
        self.base_url = base_url

    @property
    def name(self) -> str:
        return "coingecko"

    def _headers(self) -> dict:
        return {"x-cg-demo-api-key": self.api_key} if self.api_key else {}

    async def _fetch_price(self, client: httpx.AsyncClient, route: SymbolRoute,
                           ident: str) -> Optional[PriceQuote]:
        data = await self._get(client, f"{self.base_url}/simple/price",
                               params={
                                   "ids":                 ident,
                                   "vs_currencies":       "usd",
                                   "include_24hr_change": "true",
                                   "include_24hr_vol":    "true",
                                   "include_market_cap":  "true",
                               },
                               headers=self._headers())
        coin = data.get(ident)
        if not coin or not coin.get("usd"):
            return None
        price = as_float(coin["usd"])
        pct   = as_float(coin.get("usd_24h_change"))
        return PriceQuote(
            symbol              = route.symbol,
            current_price       = price,
            change_24h_absolute = change_from_percent(price, pct),
            change_24h_percent  = pct,
            volume_24h          = as_float(coin.get("usd_24h_vol")),
            market_cap          = as_float(coin.get("usd_market_cap")),
            source_id           = self.name,
        )

    async def _fetch_candles(self, client: httpx.AsyncClient, route: SymbolRoute,
                             ident: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        spacing = point_spacing(timeframe.span_days)
        if timeframe.interval_seconds < spacing:
            raise UpstreamFailure(self.name, f"{timeframe.token} bars are finer than the "
                                             f"{spacing // MINUTE}-minute point spacing")
        data = await self._get(client, f"{self.base_url}/coins/{ident}/market_chart",
                               params={"vs_currency": "usd", "days": timeframe.span_days},
                               headers=self._headers())
        candles = bucket_points(data.get("prices") or [], timeframe.interval_ms)
        log.debug(f"{route.symbol}: {len(candles)} buckets from {len(data.get('prices') or [])} points")
        return CandleSeries(
            symbol    = route.symbol,
            timeframe = timeframe.token,
            candles   = ordered_candles(candles, limit=timeframe.count),
            source_id = self.name,
        )
