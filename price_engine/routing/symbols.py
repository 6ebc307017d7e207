"""
CyberDash — Symbol Routing Table
─────────────────────────────────
The single source of truth for which upstream can quote which symbol.
The resolver and the client mirror both read this table (the client via
/api/crypto/symbols), so there is exactly one copy to keep current.

A None identifier means "this adapter is skipped for this symbol".
The table is validated at import: every route needs at least one
identifier and a positive seed price for the synthetic fallback.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

ASSET_CLASSES = ("major", "solana", "meme")


@dataclass(frozen=True)
class SymbolRoute:
    symbol:        str
    asset_class:   str                  # "major" | "solana" | "meme"
    cryptocompare: Optional[str] = None   # ticker code, e.g. "BTC"
    birdeye:       Optional[str] = None   # Solana mint address
    dexscreener:   Optional[str] = None   # token contract address
    coingecko:     Optional[str] = None   # coin id, e.g. "bitcoin"
    seed_price:    float = 0.0            # last-resort synthetic seed (USD)
    volatility:    float = 0.02           # synthetic step volatility

    def identifier(self, adapter_field: str) -> Optional[str]:
        return getattr(self, adapter_field, None)

    def adapter_fields(self) -> List[str]:
        return [f for f in ADAPTER_FIELDS if self.identifier(f)]

    def to_dict(self) -> dict:
        return {
            "symbol":      self.symbol,
            "asset_class": self.asset_class,
            "sources":     self.adapter_fields(),
            "seed_price":  self.seed_price,
        }


ADAPTER_FIELDS = ("cryptocompare", "birdeye", "dexscreener", "coingecko")

WRAPPED_SOL_MINT   = "So11111111111111111111111111111111111111112"
FOUR_TOKEN_ADDRESS = "0x0A43fC31a73013089DF59194872Ecae4cAe14444"

_ROUTES = [
    # Majors: CryptoCompare first, CoinGecko behind it
    SymbolRoute("BTC/USD", "major", cryptocompare="BTC", coingecko="bitcoin",
                seed_price=122000.0, volatility=0.02),
    SymbolRoute("ETH/USD", "major", cryptocompare="ETH", coingecko="ethereum",
                seed_price=4480.0, volatility=0.02),
    SymbolRoute("SOL/USD", "major", cryptocompare="SOL", birdeye=WRAPPED_SOL_MINT,
                coingecko="solana", seed_price=156.78, volatility=0.03),
    SymbolRoute("BNB/USD", "major", cryptocompare="BNB", coingecko="binancecoin",
                seed_price=1150.0, volatility=0.02),
    # Four.meme on BSC: DexScreener only, then CoinGecko
    SymbolRoute("FOUR", "meme", dexscreener=FOUR_TOKEN_ADDRESS, coingecko="four-meme",
                seed_price=0.1558, volatility=0.08),
    # pump.fun: no direct ticker feed; CoinGecko or synthetic
    SymbolRoute("PUMP/USD", "solana", coingecko="pump-fun",
                seed_price=0.00704355, volatility=0.05),
]


def _build(routes: List[SymbolRoute]) -> Dict[str, SymbolRoute]:
    table: Dict[str, SymbolRoute] = {}
    for route in routes:
        if route.symbol in table:
            raise ValueError(f"Duplicate route for {route.symbol}")
        if route.asset_class not in ASSET_CLASSES:
            raise ValueError(f"{route.symbol}: unknown asset class {route.asset_class!r}")
        if not route.adapter_fields():
            raise ValueError(f"{route.symbol}: no adapter mapping")
        if route.seed_price <= 0:
            raise ValueError(f"{route.symbol}: seed price must be positive")
        if not 0 < route.volatility < 1:
            raise ValueError(f"{route.symbol}: volatility out of range")
        table[route.symbol] = route
    return table


SYMBOLS: Dict[str, SymbolRoute] = _build(_ROUTES)


def normalise_symbol(symbol: str) -> str:
    """'btc-usd' → 'BTC/USD'; bare 'ETH' → 'ETH/USD' when only the pair exists."""
    symbol = (symbol or "").strip().upper().replace("-", "/")
    if symbol in SYMBOLS:
        return symbol
    if "/" not in symbol and f"{symbol}/USD" in SYMBOLS:
        return f"{symbol}/USD"
    return symbol


def get_route(symbol: str) -> Optional[SymbolRoute]:
    return SYMBOLS.get(normalise_symbol(symbol))
