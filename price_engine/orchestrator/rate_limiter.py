"""
CyberDash — Rate Limiter
─────────────────────────
Token-bucket rate limiter per upstream provider.
Keeps a burst of dashboard refreshes from getting us banned upstream.

Limits enforced (free tiers):
  CryptoCompare:  100k req/month       → 2 req/s sustained, burst 20
  CoinGecko:      ~30 req/min (demo)   → 1 req per 2s, burst 10
  DexScreener:    300 req/min          → 5 req/s, burst 30
  Birdeye:        1 req/s standard     → 1 req/s, burst 5

Request handlers never sleep on a bucket. An empty bucket is reported as
a local failure and the fallback chain simply moves to the next source.
"""

import logging
import time
from typing import Dict, Optional

log = logging.getLogger("cd.rate_limiter")


class TokenBucket:
    """Token bucket: refills at `rate` tokens/second up to `capacity`."""

    def __init__(self, capacity: float, rate: float):
        self.capacity  = capacity
        self.rate      = rate       # tokens per second
        self._tokens   = capacity
        self._last     = time.monotonic()

    def _refill(self):
        now = time.monotonic()
        elapsed = now - self._last
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last   = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Take tokens if they are there right now; never waits."""
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens


# ── Provider configurations ───────────────────────────────────
# (capacity, rate_per_second)
# capacity = burst allowance; rate = sustained throughput

_PROVIDER_CONFIG: Dict[str, tuple] = {
    "cryptocompare": (20, 2.0),
    "coingecko":     (10, 0.5),
    "dexscreener":   (30, 5.0),
    "birdeye":       (5,  1.0),
}


class RateLimiter:
    """One bucket per provider, created on first use."""

    def __init__(self, config: Optional[Dict[str, tuple]] = None):
        self._config  = {**_PROVIDER_CONFIG, **(config or {})}
        self._buckets: Dict[str, TokenBucket] = {}

    def bucket(self, provider: str) -> TokenBucket:
        if provider not in self._buckets:
            cap, rate = self._config.get(provider, (5, 1 / 60))
            self._buckets[provider] = TokenBucket(cap, rate)
        return self._buckets[provider]

    def try_acquire(self, provider: str, tokens: float = 1.0) -> bool:
        allowed = self.bucket(provider).try_acquire(tokens)
        if not allowed:
            log.warning(f"Local rate limit reached for {provider}")
        return allowed

    def snapshot(self) -> Dict[str, float]:
        return {name: round(b.available, 2) for name, b in self._buckets.items()}
