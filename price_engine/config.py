"""
CyberDash — Configuration
──────────────────────────
Everything tunable comes from the environment (or a local .env file).
Settings are read once at startup and handed to the app factory, so tests
can build their own without touching os.environ.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

CRYPTOCOMPARE_BASE_URL = "https://min-api.cryptocompare.com/data"
COINGECKO_BASE_URL     = "https://api.coingecko.com/api/v3"
BIRDEYE_BASE_URL       = "https://public-api.birdeye.so"
DEXSCREENER_BASE_URL   = "https://api.dexscreener.com/latest/dex"
BSC_RPC_URL            = "https://bsc-dataseed.binance.org/"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name, "").strip()
    # Placeholder left in .env.example files counts as unset
    if not raw or raw == "your-api-key-here":
        return None
    return raw


@dataclass
class Settings:
    port:                    int = 8000
    log_level:               str = "INFO"

    cryptocompare_api_key:   Optional[str] = None
    birdeye_api_key:         Optional[str] = None
    coingecko_api_key:       Optional[str] = None
    bsc_rpc_url:             str = BSC_RPC_URL

    adapter_timeout_s:       float = 5.0
    upstream_retries:        int = 2

    chart_cache_ttl_s:       int = 300
    price_cache_ttl_s:       int = 30
    cache_sweep_interval_s:  int = 3600

    sentiment_method:        str = "volatility"   # "volatility" | "weighted"
    sentiment_jitter:        float = 2.5
    ws_poll_interval_s:      float = 3.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            port                   = _env_int("PORT", 8000),
            log_level              = os.getenv("LOG_LEVEL", "INFO").upper(),
            cryptocompare_api_key  = _env_str("CRYPTOCOMPARE_API_KEY"),
            birdeye_api_key        = _env_str("BIRDEYE_API_KEY"),
            coingecko_api_key      = _env_str("COINGECKO_API_KEY"),
            bsc_rpc_url            = os.getenv("BSC_RPC_URL", BSC_RPC_URL),
            adapter_timeout_s      = _env_float("ADAPTER_TIMEOUT_SECONDS", 5.0),
            upstream_retries       = _env_int("UPSTREAM_RETRIES", 2),
            chart_cache_ttl_s      = _env_int("CHART_CACHE_TTL", 300),
            price_cache_ttl_s      = _env_int("PRICE_CACHE_TTL", 30),
            cache_sweep_interval_s = _env_int("CACHE_SWEEP_SECONDS", 3600),
            sentiment_method       = os.getenv("SENTIMENT_METHOD", "volatility").lower(),
            sentiment_jitter       = _env_float("SENTIMENT_JITTER", 2.5),
            ws_poll_interval_s     = _env_float("WS_POLL_INTERVAL", 3.0),
        )
