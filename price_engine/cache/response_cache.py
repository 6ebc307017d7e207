"""
CyberDash — Response Cache
───────────────────────────
Process-local TTL cache for normalised upstream responses.

Two independent expiry mechanisms:
  - get() treats anything older than its operation's TTL as absent
  - sweep() deletes expired entries, run hourly by the scheduler, so keys
    that are never requested again cannot pile up

One instance is built at startup and handed to the service; tests build a
fresh one with a fake clock. APScheduler runs plain-function jobs on a
worker thread, so every read and write goes through a lock.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from price_engine.cache.ttl_config import SWEEP_INTERVAL_S, TTL
from price_engine.models.market_payload import Payload

log = logging.getLogger("cd.cache")

SWEEP_JOB_ID = "cache_sweep"


@dataclass(frozen=True)
class CacheKey:
    operation: str                   # "price" | "chart"
    symbol:    str
    timeframe: Optional[str] = None  # charts only

    def __str__(self) -> str:
        if self.timeframe:
            return f"{self.operation}:{self.symbol}:{self.timeframe}"
        return f"{self.operation}:{self.symbol}"


def price_key(symbol: str) -> CacheKey:
    return CacheKey("price", symbol)


def chart_key(symbol: str, timeframe: str) -> CacheKey:
    return CacheKey("chart", symbol, timeframe)


@dataclass(frozen=True)
class CacheEntry:
    key:          CacheKey
    payload:      Payload
    stored_at_ms: int
    source_id:    str

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.stored_at_ms


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class ResponseCache:

    def __init__(self, ttls: Optional[Dict[str, int]] = None,
                 clock: Callable[[], int] = _wall_clock_ms):
        self._ttls    = {**TTL, **(ttls or {})}
        self._clock   = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock    = threading.RLock()
        self._hits    = 0
        self._misses  = 0
        self._evicted = 0

    def ttl_for(self, operation: str) -> int:
        return self._ttls.get(operation, 0)

    def _expired(self, entry: CacheEntry, now_ms: int) -> bool:
        return entry.age_ms(now_ms) > self.ttl_for(entry.key.operation) * 1000

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._expired(entry, now):
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def get_stale(self, key: CacheKey) -> Optional[CacheEntry]:
        """Entry regardless of age, until a sweep removes it. Last-resort reads only."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, payload: Payload, source_id: str) -> Optional[CacheEntry]:
        """Store (or overwrite) an entry. Operations with a zero TTL are not stored."""
        if self.ttl_for(key.operation) <= 0:
            return None
        entry = CacheEntry(key=key, payload=payload,
                           stored_at_ms=self._clock(), source_id=source_id)
        with self._lock:
            self._entries[key] = entry
        return entry

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if self._expired(e, now)]
            for k in stale:
                del self._entries[k]
            self._evicted += len(stale)
            remaining = len(self._entries)
        if stale:
            log.info(f"Cache sweep evicted {len(stale)} entries ({remaining} remain)")
        return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits":    self._hits,
                "misses":  self._misses,
                "evicted": self._evicted,
                "ttl_s":   dict(self._ttls),
            }


def schedule_sweep(scheduler, cache: ResponseCache, interval_s: int = SWEEP_INTERVAL_S):
    """Register the periodic sweep on an APScheduler scheduler."""
    scheduler.add_job(
        cache.sweep,
        "interval",
        seconds          = interval_s,
        id               = SWEEP_JOB_ID,
        name             = "Response cache sweep",
        max_instances    = 1,
        replace_existing = True,
    )
    log.info(f"Cache sweep scheduled every {interval_s}s")
