"""
CyberDash — Upstream Adapters
──────────────────────────────
build_adapters() returns the adapter set in fallback priority order.
The resolver never reorders it; each symbol's chain is this list filtered
down to the adapters that have an identifier for it.

ADAPTER_TIMEOUT_SECONDS bounds a whole adapter attempt, retries included,
so each request gets a share of it.
"""

from typing import List, Optional

from price_engine.adapters.base import SourceAdapter
from price_engine.adapters.birdeye import BirdeyeAdapter
from price_engine.adapters.coingecko import CoinGeckoAdapter
from price_engine.adapters.cryptocompare import CryptoCompareAdapter
from price_engine.adapters.dexscreener import DexScreenerAdapter
from price_engine.adapters.http import request_timeout
from price_engine.config import Settings
from price_engine.orchestrator.rate_limiter import RateLimiter

__all__ = [
    "SourceAdapter",
    "CryptoCompareAdapter",
    "BirdeyeAdapter",
    "DexScreenerAdapter",
    "CoinGeckoAdapter",
    "build_adapters",
]


def build_adapters(settings: Settings, limiter: Optional[RateLimiter] = None) -> List[SourceAdapter]:
    common = {
        "limiter":  limiter,
        "attempts": settings.upstream_retries,
        "timeout":  request_timeout(settings.adapter_timeout_s, settings.upstream_retries),
    }
    return [
        CryptoCompareAdapter(api_key=settings.cryptocompare_api_key, **common),
        BirdeyeAdapter(api_key=settings.birdeye_api_key, **common),
        DexScreenerAdapter(**common),
        CoinGeckoAdapter(api_key=settings.coingecko_api_key, **common),
    ]
