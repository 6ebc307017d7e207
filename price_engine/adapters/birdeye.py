"""
CyberDash — Birdeye Adapter
────────────────────────────
Solana token prices by mint address. Only used when BIRDEYE_API_KEY is
configured; without a key every call would be rejected, so the adapter
reports itself unavailable and the resolver skips it.

  price:  /defi/price?address=     data.value, data.priceChange24h, data.updateUnixTime
  chart:  /defi/ohlcv?address=&type=&time_from=&time_to=   data.items[].{unixTime,o,h,l,c}
"""

import logging
import time
from typing import Optional

import httpx

from price_engine.adapters.base import SourceAdapter, as_float, change_from_percent, ordered_candles
from price_engine.config import BIRDEYE_BASE_URL
from price_engine.models.market_payload import Candle, CandleSeries, PriceQuote
from price_engine.routing.symbols import SymbolRoute
from price_engine.routing.timeframes import DAY, HOUR, MINUTE, WEEK, Timeframe

log = logging.getLogger("cd.adapters.birdeye")

OHLCV_TYPES = {
    MINUTE:      "1m",
    5 * MINUTE:  "5m",
    15 * MINUTE: "15m",
    HOUR:        "1H",
    4 * HOUR:    "4H",
    DAY:         "1D",
    WEEK:        "1W",
}


def ohlcv_type(timeframe: Timeframe) -> str:
    return OHLCV_TYPES.get(timeframe.interval_seconds, "1H")


class BirdeyeAdapter(SourceAdapter):

    route_field = "birdeye"

    def __init__(self, api_key: Optional[str] = None, base_url: str = BIRDEYE_BASE_URL,
                 chain: str = "solana", **kw):
        super().__init__(**kw)
        self.api_key  = api_key
        self.base_url = base_url
        self.chain    = chain

    @property
    def name(self) -> str:
        return "birdeye"

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {"X-API-KEY": self.api_key or "", "x-chain": self.chain}

    async def _fetch_price(self, client: httpx.AsyncClient, route: SymbolRoute,
                           ident: str) -> Optional[PriceQuote]:
        data = await self._get(client, f"{self.base_url}/defi/price",
                               params={"address": ident}, headers=self._headers())
        if not data.get("success") or not data.get("data"):
            return None
        body  = data["data"]
        price = as_float(body.get("value"))
        pct   = as_float(body.get("priceChange24h"))
        updated = body.get("updateUnixTime")
        return PriceQuote(
            symbol              = route.symbol,
            current_price       = price,
            change_24h_absolute = change_from_percent(price, pct),
            change_24h_percent  = pct,
            volume_24h          = 0.0,   # not on the price endpoint
            market_cap          = 0.0,
            source_id           = self.name,
            fetched_at_ms       = int(updated) * 1000 if updated else int(time.time() * 1000),
        )

    async def _fetch_candles(self, client: httpx.AsyncClient, route: SymbolRoute,
                             ident: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        time_to   = int(time.time())
        time_from = time_to - timeframe.span_seconds
        data = await self._get(client, f"{self.base_url}/defi/ohlcv",
                               params={"address": ident, "type": ohlcv_type(timeframe),
                                       "time_from": time_from, "time_to": time_to},
                               headers=self._headers())
        if not data.get("success"):
            return None
        items = (data.get("data") or {}).get("items") or []
        candles = [
            Candle(
                timestamp_ms = int(item["unixTime"]) * 1000,
                open         = as_float(item["o"]),
                high         = as_float(item["h"]),
                low          = as_float(item["l"]),
                close        = as_float(item["c"]),
            )
            for item in items
        ]
        return CandleSeries(
            symbol    = route.symbol,
            timeframe = timeframe.token,
            candles   = ordered_candles(candles, limit=timeframe.count),
            source_id = self.name,
        )
