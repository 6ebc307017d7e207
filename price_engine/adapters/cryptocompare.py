"""
CyberDash — CryptoCompare Adapter
──────────────────────────────────
Primary source for the major coins.

  price:  /pricemultifull  RAW.<SYM>.USD  (PRICE, CHANGE24HOUR, CHANGEPCT24HOUR,
                                           VOLUME24HOURTO, MKTCAP)
  chart:  /histominute | /histohour | /histoday  with aggregate + limit

Bar times come back in epoch seconds. The API key is optional; without it
we share the anonymous quota.
"""

import logging
from typing import Optional, Tuple

import httpx

from price_engine.adapters.base import SourceAdapter, as_float, ordered_candles
from price_engine.config import CRYPTOCOMPARE_BASE_URL
from price_engine.models.market_payload import Candle, CandleSeries, PriceQuote
from price_engine.routing.symbols import SymbolRoute
from price_engine.routing.timeframes import DAY, HOUR, MINUTE, Timeframe

log = logging.getLogger("cd.adapters.cryptocompare")


def history_params(timeframe: Timeframe) -> Tuple[str, int, int]:
    """(endpoint, aggregate, limit) for a timeframe."""
    secs = timeframe.interval_seconds
    if secs < HOUR:
        return "histominute", max(1, secs // MINUTE), timeframe.count
    if secs < DAY:
        return "histohour", secs // HOUR, timeframe.count
    return "histoday", secs // DAY, timeframe.count


class CryptoCompareAdapter(SourceAdapter):

    route_field = "cryptocompare"

    def __init__(self, api_key: Optional[str] = None, base_url: str = CRYPTOCOMPARE_BASE_URL, **kw):
        super().__init__(**kw)
        self.api_key  = api_key
        self.base_url = base_url

    @property
    def name(self) -> str:
        return "cryptocompare"

    def _headers(self) -> dict:
        return {"authorization": f"Apikey {self.api_key}"} if self.api_key else {}

    async def _fetch_price(self, client: httpx.AsyncClient, route: SymbolRoute,
                           ident: str) -> Optional[PriceQuote]:
        data = await self._get(client, f"{self.base_url}/pricemultifull",
                               params={"fsyms": ident, "tsyms": "USD"},
                               headers=self._headers())
        coin = (data.get("RAW") or {}).get(ident, {}).get("USD")
        if not coin or not coin.get("PRICE"):
            return None
        return PriceQuote(
            symbol              = route.symbol,
            current_price       = as_float(coin["PRICE"]),
            change_24h_absolute = as_float(coin.get("CHANGE24HOUR")),
            change_24h_percent  = as_float(coin.get("CHANGEPCT24HOUR")),
            volume_24h          = as_float(coin.get("VOLUME24HOURTO")),
            market_cap          = as_float(coin.get("MKTCAP")),
            source_id           = self.name,
        )

    async def _fetch_candles(self, client: httpx.AsyncClient, route: SymbolRoute,
                             ident: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        endpoint, aggregate, limit = history_params(timeframe)
        result = await self._get(client, f"{self.base_url}/{endpoint}",
                                 params={"fsym": ident, "tsym": "USD",
                                         "limit": limit, "aggregate": aggregate},
                                 headers=self._headers())
        if result.get("Response") != "Success":
            log.warning(f"{route.symbol}: CryptoCompare said {result.get('Message') or result.get('Response')}")
            return None
        rows = result.get("Data")
        # v2 endpoints nest the bars one level deeper
        if isinstance(rows, dict):
            rows = rows.get("Data")
        if not rows:
            return None

        candles = [
            Candle(
                timestamp_ms = int(row["time"]) * 1000,
                open         = as_float(row["open"]),
                high         = as_float(row["high"]),
                low          = as_float(row["low"]),
                close        = as_float(row["close"]),
            )
            for row in rows
            # zero rows pad the series before a coin was listed
            if as_float(row.get("close")) > 0
        ]
        log.debug(f"{route.symbol}: {len(candles)} bars from {endpoint}")
        return CandleSeries(
            symbol    = route.symbol,
            timeframe = timeframe.token,
            candles   = ordered_candles(candles, limit=timeframe.count),
            source_id = self.name,
        )
