import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from email.utils import formatdate
from typing import Dict, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from price_engine.adapters import SourceAdapter, build_adapters
from price_engine.api.endpoints import PriceService
from price_engine.cache.response_cache import ResponseCache, schedule_sweep
from price_engine.cache.ttl_config import NO_CACHE_HEADERS, SENTIMENT_MAX_AGE, cache_control
from price_engine.config import Settings
from price_engine.errors import PriceEngineError, UnsupportedSymbol
from price_engine.orchestrator.rate_limiter import RateLimiter
from price_engine.orchestrator.resolver import FallbackResolver
from price_engine.orchestrator.sentiment import SentimentEstimator

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(),
                    format="%(asctime)s %(levelname)s %(name)s %(message)s")
log = logging.getLogger("cd.app")

DEFAULT_SYMBOL = "BNB/USD"

RPC_INTERNAL_ERROR = {"code": -32603, "message": "Internal error"}


class ConnectionManager:
    def __init__(self):
        self.active: Dict[str, List[WebSocket]] = {}

    async def connect(self, ws: WebSocket, symbol: str):
        await ws.accept()
        self.active.setdefault(symbol, []).append(ws)

    def disconnect(self, ws: WebSocket, symbol: str):
        if symbol in self.active:
            self.active[symbol] = [w for w in self.active[symbol] if w != ws]
            if not self.active[symbol]:
                del self.active[symbol]

    def count(self) -> int:
        return sum(len(v) for v in self.active.values())


def create_app(
    settings:  Optional[Settings] = None,
    adapters:  Optional[List[SourceAdapter]] = None,
    cache:     Optional[ResponseCache] = None,
    estimator: Optional[SentimentEstimator] = None,
) -> FastAPI:
    """
    Build the proxy app. Everything stateful is created here and reached
    through app.state, so each test can start from a fresh cache and its
    own fake adapters.
    """
    settings  = settings or Settings.from_env()
    limiter   = RateLimiter()
    adapters  = adapters if adapters is not None else build_adapters(settings, limiter)
    cache     = cache or ResponseCache(ttls={
        "chart": settings.chart_cache_ttl_s,
        "price": settings.price_cache_ttl_s,
    })
    estimator = estimator or SentimentEstimator(settings.sentiment_method,
                                                jitter=settings.sentiment_jitter)
    manager   = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = httpx.AsyncClient(
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
            timeout=settings.adapter_timeout_s,
        )
        resolver = FallbackResolver(adapters, client, timeout=settings.adapter_timeout_s)
        app.state.http    = client
        app.state.service = PriceService(resolver, cache, estimator)

        scheduler = AsyncIOScheduler()
        schedule_sweep(scheduler, cache, settings.cache_sweep_interval_s)
        scheduler.start()
        log.info(f"Proxy ready: {', '.join(a.name for a in adapters if a.is_available())}")
        yield
        scheduler.shutdown(wait=False)
        await client.aclose()

    app = FastAPI(
        title="CyberDash Price Proxy",
        description="Crypto prices, charts and sentiment aggregated from CryptoCompare, "
                    "Birdeye, DexScreener and CoinGecko with fallback and caching.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache    = cache

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PriceEngineError)
    async def price_engine_error(request: Request, exc: PriceEngineError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        log.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/")
    async def root():
        return {"status": "ok", "docs": "/docs", "api": "/api/crypto/price?symbol=BTC/USD"}

    @app.get("/health")
    async def health():
        return {
            "status":    "healthy",
            "adapters":  {a.name: a.is_available() for a in adapters},
            "cache":     cache.stats(),
            "limits":    limiter.snapshot(),
            "websockets": manager.count(),
            "timestamp": int(time.time()),
        }

    @app.get("/api/crypto/price", tags=["Crypto"])
    async def crypto_price(symbol: str = Query(DEFAULT_SYMBOL, description="e.g. BTC/USD, FOUR")):
        served = await app.state.service.price(symbol)
        return JSONResponse(served.payload.to_dict(), headers={
            "X-Price-Source": served.source_id,
            "X-Cache":        "HIT" if served.cache_hit else "MISS",
            "Cache-Control":  cache_control(cache.ttl_for("price")),
        })

    @app.get("/api/crypto/chart", tags=["Crypto"])
    async def crypto_chart(
        timeframe: str = Query("1h", description="1m 5m 15m 1h 4h 1d 7d 30d 90d"),
        symbol:    str = Query(DEFAULT_SYMBOL),
    ):
        served = await app.state.service.chart(symbol, timeframe)
        return JSONResponse(served.payload.to_list(), headers={
            "X-Chart-Source":    served.source_id,
            "X-Chart-Synthetic": "true" if served.synthetic else "false",
            "X-Cache":           "HIT" if served.cache_hit else "MISS",
            "Cache-Control":     cache_control(cache.ttl_for("chart")),
        })

    @app.get("/api/crypto/market-prices", tags=["Crypto"])
    async def market_prices():
        body = await app.state.service.market_prices()
        return JSONResponse(body, headers={
            **NO_CACHE_HEADERS,
            "Last-Modified": formatdate(usegmt=True),
        })

    @app.get("/api/crypto/fear-greed", tags=["Crypto"])
    async def fear_greed():
        body = await app.state.service.fear_greed()
        return JSONResponse(body, headers={"Cache-Control": cache_control(SENTIMENT_MAX_AGE)})

    @app.get("/api/crypto/symbols", tags=["Crypto"])
    async def crypto_symbols():
        return app.state.service.symbols()

    @app.post("/api/bsc-rpc-proxy", tags=["Collaborators"])
    async def bsc_rpc_proxy(request: Request):
        body = None
        try:
            body = await request.json()
            r = await app.state.http.post(settings.bsc_rpc_url, json=body,
                                          timeout=settings.adapter_timeout_s)
            return JSONResponse(r.json())
        except (ValueError, httpx.HTTPError) as e:
            log.error(f"BSC RPC proxy failed: {e}")
            rid = body.get("id") if isinstance(body, dict) else None
            return JSONResponse({"jsonrpc": "2.0", "error": RPC_INTERNAL_ERROR, "id": rid},
                                status_code=500)

    @app.websocket("/ws/price")
    async def websocket_price(websocket: WebSocket):
        symbol = websocket.query_params.get("symbol", DEFAULT_SYMBOL)
        await manager.connect(websocket, symbol)
        try:
            while True:
                try:
                    served = await app.state.service.price(symbol)
                except UnsupportedSymbol as e:
                    await websocket.send_json({"symbol": symbol, "error": e.message})
                    await websocket.close(code=1008)
                    break
                except PriceEngineError as e:
                    await websocket.send_json({"symbol": symbol, "error": e.message, "retry_after": 5})
                else:
                    data = served.payload.to_dict()
                    data["ws"]     = True
                    data["cached"] = served.cache_hit
                    await websocket.send_json(data)
                # Wake early on a client message so disconnects are noticed
                # without waiting out the poll interval.
                try:
                    await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_poll_interval_s)
                except asyncio.TimeoutError:
                    pass
        except WebSocketDisconnect:
            log.info(f"WS disconnected: {symbol}")
        finally:
            manager.disconnect(websocket, symbol)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = app.state.settings
    uvicorn.run("app:app", host="0.0.0.0", port=settings.port, reload=False,
                log_level=settings.log_level.lower())
