"""
CyberDash — Error taxonomy
───────────────────────────
Only two failures ever leave the resolver as exceptions:

  UnsupportedSymbol  no routing entry; rejected before any network call (400)
  ChainExhausted     every adapter in a price chain failed (502)

Single-adapter failures are values (FetchResult.error), never raised.
Anything else reaching the HTTP layer is an internal failure (500).
"""

from typing import List, Optional


class PriceEngineError(Exception):
    """Base class for errors the HTTP layer maps to a status code."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedSymbol(PriceEngineError):
    status_code = 400

    def __init__(self, symbol: str):
        super().__init__(f"Symbol {symbol} is not supported")
        self.symbol = symbol


class ChainExhausted(PriceEngineError):
    status_code = 502

    def __init__(self, symbol: str, operation: str, attempts: Optional[List[str]] = None):
        super().__init__(f"No {operation} data available for {symbol}")
        self.symbol    = symbol
        self.operation = operation
        self.attempts  = attempts or []


class UpstreamFailure(Exception):
    """
    One upstream call went wrong (transport error, non-2xx, bad body).
    Raised inside an adapter and turned into a failed FetchResult at the
    adapter boundary; it never reaches the resolver.
    """

    def __init__(self, source: str, reason: str, status: Optional[int] = None):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason
        self.status = status
