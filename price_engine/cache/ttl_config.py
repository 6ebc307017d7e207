"""
CyberDash — TTL Configuration
──────────────────────────────
Defaults for server-side cache durations, by operation — how fast each
view goes stale on the dashboard. Settings can override them per deploy.
The browser keeps its own cache on top; the two layers never share state.
"""

# ── Per operation TTL (seconds) ───────────────────────────────

TTL = {
    "chart":     5 * 60,   # 5 minutes  (candles move one bar at a time)
    "price":     30,       # 30 seconds (ticker header refreshes often)
    "sentiment": 0,        # recomputed every request
}

# Sentiment is never cached server-side, but the gauge only needs a
# refresh per minute, so the browser may hold it that long.
SENTIMENT_MAX_AGE = 60

# ── Background sweep ──────────────────────────────────────────
# Evicts entries nobody asks for again; lookups already treat them as absent.
SWEEP_INTERVAL_S = 60 * 60   # hourly

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma":        "no-cache",
    "Expires":       "0",
}


def cache_control(max_age: int) -> str:
    if max_age <= 0:
        return NO_CACHE_HEADERS["Cache-Control"]
    return f"public, max-age={max_age}"
