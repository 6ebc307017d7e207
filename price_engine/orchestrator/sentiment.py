"""
CyberDash — Sentiment Estimator
────────────────────────────────
Fear & greed gauge computed from the 24h % change of a weighted basket.

Basket: BTC 0.4 · ETH 0.3 · BNB 0.2 · SOL 0.1
Members without data are dropped and the remaining weights renormalised.
No members at all → (50, "Neutral").

Two methods:

  weighted     per-asset clamp(50 + change), weighted mean, 7 bands
  volatility   50 + 4 × weighted average change
               spread (max - min) beyond 20 pushes toward the average's side,
               ramping linearly up to ±10 at a spread of 50
               ± jitter so the gauge is not frozen between refreshes
               5 bands

The served method is "volatility". With jitter off, raising any member's
change never lowers either score. The volatility push moves at most 1/3
point per point of spread and a member of weight w moves the linear term
by 4w, so every renormalised weight must be at least MIN_MEMBER_WEIGHT
(1/12). The constructor rejects lighter baskets.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from price_engine.models.market_payload import PriceQuote, SentimentScore, now_ms

log = logging.getLogger("cd.sentiment")

BASKET: Dict[str, float] = {
    "BTC/USD": 0.4,
    "ETH/USD": 0.3,
    "BNB/USD": 0.2,
    "SOL/USD": 0.1,
}

METHOD_WEIGHTED   = "weighted"
METHOD_VOLATILITY = "volatility"
METHODS = (METHOD_WEIGHTED, METHOD_VOLATILITY)

NEUTRAL = 50

# (lower bound, label), checked top down
WEIGHTED_BANDS: List[Tuple[float, str]] = [
    (80, "Extreme Greed"),
    (65, "Greed"),
    (55, "Optimistic"),
    (45, "Neutral"),
    (35, "Cautious"),
    (20, "Fear"),
    (0,  "Extreme Fear"),
]

VOLATILITY_BANDS: List[Tuple[float, str]] = [
    (80, "Extreme Greed"),
    (60, "Greed"),
    (40, "Neutral"),
    (20, "Fear"),
    (0,  "Extreme Fear"),
]

CHANGE_MULTIPLIER  = 4.0
SPREAD_THRESHOLD   = 20.0
SPREAD_PUSH        = 10.0
SPREAD_RAMP        = 30.0   # spread above the threshold at which the push is full
MIN_MEMBER_WEIGHT  = SPREAD_PUSH / (SPREAD_RAMP * CHANGE_MULTIPLIER)
DEFAULT_JITTER     = 2.5


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def classify(value: float, bands: List[Tuple[float, str]]) -> str:
    for floor, label in bands:
        if value >= floor:
            return label
    return bands[-1][1]


def spread_push(spread: float, avg: float) -> float:
    """0 up to the threshold, then linear to ±SPREAD_PUSH, signed like `avg`."""
    ramp = clamp((spread - SPREAD_THRESHOLD) / SPREAD_RAMP, 0.0, 1.0) * SPREAD_PUSH
    return ramp if avg >= 0 else -ramp


def renormalise(changes: Dict[str, float], weights: Dict[str, float]) -> Dict[str, float]:
    """Weights of the members present in `changes`, scaled to sum to 1."""
    present = {s: weights[s] for s in changes if weights.get(s, 0) > 0}
    total = sum(present.values())
    if total <= 0:
        return {}
    return {s: w / total for s, w in present.items()}


class SentimentEstimator:

    def __init__(self, method: str = METHOD_VOLATILITY,
                 weights: Optional[Dict[str, float]] = None,
                 jitter: float = DEFAULT_JITTER,
                 rng: Optional[random.Random] = None):
        if method not in METHODS:
            raise ValueError(f"Unknown sentiment method {method!r}; expected one of {METHODS}")
        self.method  = method
        self.weights = dict(weights or BASKET)
        if method == METHOD_VOLATILITY:
            lightest = min(renormalise(self.weights, self.weights).values(), default=1.0)
            if lightest < MIN_MEMBER_WEIGHT:
                raise ValueError(f"Basket weight {lightest:.3f} is below {MIN_MEMBER_WEIGHT:.3f}; "
                                 f"the volatility push would outweigh that member")
        self.jitter  = max(0.0, jitter)
        self.rng     = rng or random.Random()

    @property
    def bands(self) -> List[Tuple[float, str]]:
        return WEIGHTED_BANDS if self.method == METHOD_WEIGHTED else VOLATILITY_BANDS

    def score(self, changes: Dict[str, float]) -> SentimentScore:
        """Score a {symbol: 24h % change} map. Symbols outside the basket are ignored."""
        changes = {s: float(c) for s, c in changes.items() if s in self.weights and c is not None}
        weights = renormalise(changes, self.weights)
        if not weights:
            return self._neutral()

        avg    = sum(changes[s] * w for s, w in weights.items())
        spread = max(changes.values()) - min(changes.values())

        push = 0.0
        if self.method == METHOD_WEIGHTED:
            raw = sum(clamp(NEUTRAL + changes[s]) * w for s, w in weights.items())
        else:
            push = spread_push(spread, avg)
            raw  = NEUTRAL + CHANGE_MULTIPLIER * avg + push
            if self.jitter:
                raw += self.rng.uniform(-self.jitter, self.jitter)

        value = int(round(clamp(raw)))
        return SentimentScore(
            value          = value,
            classification = classify(value, self.bands),
            computed_at_ms = now_ms(),
            calculation    = {
                "averageChange":   round(avg, 4),
                "volatility":      round(spread, 4),
                "volatilityPush":  round(push, 4),
                "symbolsAnalyzed": len(weights),
                "method":          self.method,
                "weights":         {s: round(w, 4) for s, w in weights.items()},
            },
        )

    def _neutral(self) -> SentimentScore:
        return SentimentScore(
            value          = NEUTRAL,
            classification = "Neutral",
            computed_at_ms = now_ms(),
            calculation    = {
                "averageChange":   0.0,
                "volatility":      0.0,
                "volatilityPush":  0.0,
                "symbolsAnalyzed": 0,
                "method":          self.method,
                "weights":         {},
            },
        )

    async def estimate(self, fetch_quote: Callable[[str], Awaitable[PriceQuote]]) -> SentimentScore:
        """
        Query every basket member concurrently through `fetch_quote` and
        score whatever came back. A member that raises is just missing.
        """
        symbols = list(self.weights)
        results = await asyncio.gather(*[fetch_quote(s) for s in symbols], return_exceptions=True)

        changes: Dict[str, float] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                log.warning(f"Sentiment: no data for {symbol} ({result})")
                continue
            changes[symbol] = result.change_24h_percent

        score = self.score(changes)
        log.info(f"Sentiment {score.value} ({score.classification}) from {len(changes)}/{len(symbols)} assets")
        return score
