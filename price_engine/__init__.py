"""
CyberDash Price Engine
───────────────────────
Multi-source crypto price/chart aggregation with fallback chains,
synthetic chart fallback, a TTL response cache and a sentiment gauge.

    from price_engine import FallbackResolver, PriceService, ResponseCache
    service = PriceService(FallbackResolver(build_adapters(settings), client), ResponseCache())
    served  = await service.price("BTC/USD")
"""

from .adapters import build_adapters
from .api.endpoints import PriceService
from .cache.response_cache import ResponseCache
from .config import Settings
from .orchestrator.resolver import FallbackResolver
from .orchestrator.sentiment import SentimentEstimator

__all__ = [
    "build_adapters",
    "PriceService",
    "ResponseCache",
    "Settings",
    "FallbackResolver",
    "SentimentEstimator",
]
