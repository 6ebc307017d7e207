"""
CyberDash — Timeframes
───────────────────────
One table maps each chart timeframe token to a bar interval and a bar
count. Every adapter derives its own query parameters from it, and the
synthetic generator uses the same numbers, so real and synthetic series
always have the same shape.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional

MINUTE = 60
HOUR   = 60 * MINUTE
DAY    = 24 * HOUR
WEEK   = 7 * DAY


@dataclass(frozen=True)
class Timeframe:
    token:            str
    interval_seconds: int
    count:            int

    @property
    def interval_ms(self) -> int:
        return self.interval_seconds * 1000

    @property
    def span_seconds(self) -> int:
        return self.interval_seconds * self.count

    @property
    def span_days(self) -> int:
        """Whole days of history needed to cover the series (min 1)."""
        return max(1, math.ceil(self.span_seconds / DAY))


TIMEFRAMES: Dict[str, Timeframe] = {
    "1m":  Timeframe("1m",  MINUTE,      1440),   # 24 hours
    "5m":  Timeframe("5m",  5 * MINUTE,  288),    # 24 hours
    "15m": Timeframe("15m", 15 * MINUTE, 96),     # 24 hours
    "1h":  Timeframe("1h",  HOUR,        24),     # 24 hours
    "4h":  Timeframe("4h",  4 * HOUR,    42),     # 7 days
    "1d":  Timeframe("1d",  DAY,         7),      # 7 days
    "7d":  Timeframe("7d",  WEEK,        7),      # 7 weeks
    "30d": Timeframe("30d", DAY,         30),     # 30 days
    "90d": Timeframe("90d", DAY,         90),     # 90 days
}

DEFAULT_TIMEFRAME = "1h"

# Labels the dashboard has used for the same buckets
_ALIASES = {
    "1D":  "1d",
    "7D":  "7d",
    "1w":  "7d",
    "30D": "30d",
    "1M":  "30d",
    "90D": "90d",
}


def resolve_timeframe(token: Optional[str]) -> Timeframe:
    """Unknown or missing tokens fall back to the 1-hour table entry."""
    if not token:
        return TIMEFRAMES[DEFAULT_TIMEFRAME]
    token = token.strip()
    token = _ALIASES.get(token, token)
    return TIMEFRAMES.get(token) or TIMEFRAMES.get(token.lower()) or TIMEFRAMES[DEFAULT_TIMEFRAME]
