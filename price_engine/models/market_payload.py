"""
CyberDash — Market Payload Model
─────────────────────────────────
Canonical shapes every adapter normalises into, and what the cache stores.
Field names are internal; to_dict() produces the JSON the dashboard reads.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PriceQuote:
    symbol:              str
    current_price:       float
    change_24h_absolute: float
    change_24h_percent:  float
    volume_24h:          float
    market_cap:          float
    source_id:           str
    fetched_at_ms:       int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "symbol":                      self.symbol,
            "current_price":               self.current_price,
            "price_change_24h":            self.change_24h_absolute,
            "price_change_percentage_24h": self.change_24h_percent,
            "total_volume":                self.volume_24h,
            "market_cap":                  self.market_cap,
            "source":                      self.source_id,
            "fetched_at":                  self.fetched_at_ms,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "PriceQuote":
        return cls(
            symbol              = d.get("symbol", ""),
            current_price       = float(d.get("current_price") or 0),
            change_24h_absolute = float(d.get("price_change_24h") or 0),
            change_24h_percent  = float(d.get("price_change_percentage_24h") or 0),
            volume_24h          = float(d.get("total_volume") or 0),
            market_cap          = float(d.get("market_cap") or 0),
            source_id           = d.get("source", "unknown"),
            fetched_at_ms       = int(d.get("fetched_at") or now_ms()),
        )


@dataclass(frozen=True)
class Candle:
    timestamp_ms: int
    open:         float
    high:         float
    low:          float
    close:        float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp_ms,
            "open":      self.open,
            "high":      self.high,
            "low":       self.low,
            "close":     self.close,
        }


@dataclass(frozen=True)
class CandleSeries:
    """Ordered candles for one (symbol, timeframe); timestamps strictly increasing."""
    symbol:    str
    timeframe: str
    candles:   Tuple[Candle, ...]
    source_id: str
    synthetic: bool = False

    def __len__(self) -> int:
        return len(self.candles)

    @property
    def last_close(self) -> Optional[float]:
        return self.candles[-1].close if self.candles else None

    def to_list(self) -> list:
        return [c.to_dict() for c in self.candles]


@dataclass(frozen=True)
class MarketTicker:
    symbol: str
    price:  float
    change: float
    source: str

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price":  self.price,
            "change": self.change,
            "source": self.source,
        }


@dataclass(frozen=True)
class SentimentScore:
    value:          int            # 0..100
    classification: str
    computed_at_ms: int = field(default_factory=now_ms)
    calculation:    Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "value":          self.value,
            "classification": self.classification,
            "timestamp":      self.computed_at_ms,
            "calculation":    dict(self.calculation),
        }


Payload = Union[PriceQuote, CandleSeries]


@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of one adapter call. Exactly one of data / error is set.
    The resolver reads `ok` and moves on; nothing is raised.
    """
    source: str
    data:   Optional[Payload] = None
    error:  Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None and self.error is None

    @classmethod
    def success(cls, source: str, data: Payload) -> "FetchResult":
        return cls(source=source, data=data)

    @classmethod
    def failure(cls, source: str, reason: str) -> "FetchResult":
        return cls(source=source, error=reason)
