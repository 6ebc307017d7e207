"""
CyberDash — DexScreener Adapter
────────────────────────────────
DEX pair data for tokens without a CEX listing (FOUR on BSC).

  price:  /tokens/<address>   pairs[] → the pair with the deepest USD liquidity

DexScreener publishes no candle history. For charts we take the live pair
price and draw a synthetic walk around it; the series keeps the
"dexscreener" provenance but is flagged synthetic so the UI can say so.
"""

import logging
import random
from typing import Optional

import httpx

from price_engine.adapters.base import SourceAdapter, as_float, change_from_percent
from price_engine.config import DEXSCREENER_BASE_URL
from price_engine.models.market_payload import CandleSeries, PriceQuote
from price_engine.orchestrator.synthetic import synthetic_series
from price_engine.routing.symbols import SymbolRoute
from price_engine.routing.timeframes import Timeframe

log = logging.getLogger("cd.adapters.dexscreener")


def deepest_pair(pairs: list) -> Optional[dict]:
    """Pair with the most USD liquidity; pairs with no price are ignored."""
    priced = [p for p in pairs or [] if p.get("priceUsd")]
    if not priced:
        return None
    return max(priced, key=lambda p: as_float((p.get("liquidity") or {}).get("usd")))


class DexScreenerAdapter(SourceAdapter):

    route_field = "dexscreener"

    def __init__(self, base_url: str = DEXSCREENER_BASE_URL,
                 rng: Optional[random.Random] = None, **kw):
        super().__init__(**kw)
        self.base_url = base_url
        self.rng      = rng

    @property
    def name(self) -> str:
        return "dexscreener"

    async def _fetch_price(self, client: httpx.AsyncClient, route: SymbolRoute,
                           ident: str) -> Optional[PriceQuote]:
        data = await self._get(client, f"{self.base_url}/tokens/{ident}")
        pair = deepest_pair(data.get("pairs"))
        if pair is None:
            return None
        price = as_float(pair["priceUsd"])
        pct   = as_float((pair.get("priceChange") or {}).get("h24"))
        log.debug(f"{route.symbol}: pair {pair.get('pairAddress')} on {pair.get('dexId')}")
        return PriceQuote(
            symbol              = route.symbol,
            current_price       = price,
            change_24h_absolute = change_from_percent(price, pct),
            change_24h_percent  = pct,
            volume_24h          = as_float((pair.get("volume") or {}).get("h24")),
            market_cap          = as_float(pair.get("marketCap") or pair.get("fdv")),
            source_id           = self.name,
        )

    async def _fetch_candles(self, client: httpx.AsyncClient, route: SymbolRoute,
                             ident: str, timeframe: Timeframe) -> Optional[CandleSeries]:
        quote = await self._fetch_price(client, route, ident)
        if quote is None or quote.current_price <= 0:
            return None
        return synthetic_series(route, timeframe, quote.current_price,
                                source_id=self.name, rng=self.rng)
