"""
CyberDash — Synthetic Data
───────────────────────────
Last line of defence for charts: when no upstream can supply history we
still draw something plausible around a known price instead of an empty
panel. Everything produced here carries a synthetic provenance so the UI
(and tests) can tell it apart from real bars.

Walk:
  open  = previous close
  close = open × (1 + u),  u uniform in ±volatility/2
  high / low = body ± random share of a wick range (half the body + 0.1%)
  floor keeps every price strictly positive
The finished walk is rescaled so the newest close equals the seed price,
which keeps the chart consistent with the ticker shown above it.
"""

import random
from typing import List, Optional, Tuple

from price_engine.models.market_payload import Candle, CandleSeries, PriceQuote, now_ms as _now_ms
from price_engine.routing.symbols import SymbolRoute
from price_engine.routing.timeframes import Timeframe

SYNTHETIC_LIVE   = "synthetic-live"     # seeded from a real price
SYNTHETIC_STATIC = "synthetic-static"   # seeded from the routing table constant

WICK_BASE = 0.001   # minimum wick as a fraction of the open


def is_synthetic_source(source_id: str) -> bool:
    return source_id.startswith("synthetic-")


def price_floor(seed_price: float) -> float:
    return max(seed_price * 1e-6, 1e-12)


def generate_candles(
    seed_price: float,
    timeframe:  Timeframe,
    volatility: float,
    now_ms:     Optional[int] = None,
    rng:        Optional[random.Random] = None,
) -> Tuple[Candle, ...]:
    if seed_price <= 0:
        raise ValueError("seed price must be positive")
    rng      = rng or random.Random()
    now_ms   = _now_ms() if now_ms is None else now_ms
    interval = timeframe.interval_ms
    count    = timeframe.count
    floor    = price_floor(seed_price)

    # Newest bar sits on the current interval boundary
    last_ts  = now_ms - (now_ms % interval)
    first_ts = last_ts - (count - 1) * interval

    bars: List[Tuple[float, float, float, float]] = []
    price = seed_price
    for _ in range(count):
        open_ = price
        close = max(floor, open_ * (1 + (rng.random() - 0.5) * volatility))
        body_low, body_high = min(open_, close), max(open_, close)
        wick = (body_high - body_low) * 0.5 + open_ * WICK_BASE
        high = body_high + rng.random() * wick
        low  = max(floor, body_low - rng.random() * wick)
        bars.append((open_, high, low, close))
        price = close

    scale = seed_price / bars[-1][3]
    return tuple(
        Candle(
            timestamp_ms = first_ts + i * interval,
            open         = o * scale,
            high         = h * scale,
            low          = lo * scale,
            close        = c * scale,
        )
        for i, (o, h, lo, c) in enumerate(bars)
    )


def synthetic_series(
    route:      SymbolRoute,
    timeframe:  Timeframe,
    seed_price: float,
    source_id:  str,
    volatility: Optional[float] = None,
    rng:        Optional[random.Random] = None,
    now_ms:     Optional[int] = None,
) -> CandleSeries:
    candles = generate_candles(
        seed_price,
        timeframe,
        volatility if volatility is not None else route.volatility,
        now_ms=now_ms,
        rng=rng,
    )
    return CandleSeries(
        symbol    = route.symbol,
        timeframe = timeframe.token,
        candles   = candles,
        source_id = source_id,
        synthetic = True,
    )


def synthetic_quote(route: SymbolRoute, now_ms: Optional[int] = None) -> PriceQuote:
    """Flat quote at the routing table's seed price."""
    return PriceQuote(
        symbol              = route.symbol,
        current_price       = route.seed_price,
        change_24h_absolute = 0.0,
        change_24h_percent  = 0.0,
        volume_24h          = 0.0,
        market_cap          = 0.0,
        source_id           = SYNTHETIC_STATIC,
        fetched_at_ms       = _now_ms() if now_ms is None else now_ms,
    )
