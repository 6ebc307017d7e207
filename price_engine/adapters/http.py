"""
CyberDash — Upstream HTTP
──────────────────────────
The one GET helper every adapter uses. Retries on 429/5xx and transport
errors, gives up immediately on other 4xx, and raises UpstreamFailure
with the cause so the adapter can report why it failed.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from price_engine.errors import UpstreamFailure

log = logging.getLogger("cd.adapters.http")

REQUEST_TIMEOUT = 5.0
RETRY_ATTEMPTS  = 2
RETRY_DELAY     = 0.25

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json",
}

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def request_timeout(budget: float, attempts: int = RETRY_ATTEMPTS) -> float:
    """
    Per-request timeout that lets every retry, plus the backoff between
    them, fit inside one adapter attempt of `budget` seconds.
    """
    attempts = max(1, attempts)
    backoff  = sum(RETRY_DELAY * (n + 1) for n in range(attempts - 1))
    return max(0.1, (budget - backoff) / attempts)


async def get_json(client: httpx.AsyncClient, source: str, url: str,
                   params: dict = None, headers: dict = None,
                   attempts: int = RETRY_ATTEMPTS,
                   timeout: float = REQUEST_TIMEOUT) -> Any:
    last_reason: Optional[str] = None
    last_status: Optional[int] = None
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            r = await client.get(url, params=params,
                                 headers={**DEFAULT_HEADERS, **(headers or {})},
                                 timeout=timeout)
            if r.status_code == 200:
                try:
                    return r.json()
                except ValueError:
                    raise UpstreamFailure(source, "invalid JSON body", r.status_code)
            last_status = r.status_code
            last_reason = f"HTTP {r.status_code}"
            if r.status_code not in RETRYABLE_STATUS:
                break
            log.warning(f"{source}: HTTP {r.status_code} from {url[:60]} (attempt {attempt+1})")
        except httpx.TimeoutException:
            last_reason = "timeout"
            log.warning(f"{source}: timeout (attempt {attempt+1}): {url[:60]}")
        except httpx.HTTPError as e:
            last_reason = f"{type(e).__name__}: {e}"
            log.warning(f"{source}: transport error (attempt {attempt+1}): {e}")
        if attempt < attempts - 1:
            await asyncio.sleep(RETRY_DELAY * (attempt + 1))

    raise UpstreamFailure(source, last_reason or "no response", last_status)
