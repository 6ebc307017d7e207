"""
End-to-end tests for the HTTP boundary. The app is built with fake
adapters and a cache on a fake clock, then driven through TestClient.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from app import create_app
from price_engine.cache.response_cache import chart_key
from price_engine.orchestrator.sentiment import SentimentEstimator


@pytest.fixture
def make_client(settings, cache):
    """make_client(adapters) → TestClient with the lifespan running."""
    clients = []

    def _make(adapters, **kw):
        app = create_app(settings=settings, adapters=adapters, cache=cache, **kw)
        client = TestClient(app, raise_server_exceptions=False)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


# ============================================================================
# /api/crypto/chart
# ============================================================================

class TestChartEndpoint:

    @pytest.mark.integration
    def test_btc_hourly_scenario(self, make_client, make_adapters, btc_trend):
        client = make_client(make_adapters(cryptocompare={"series": {"BTC/USD": btc_trend}}))
        r = client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "BTC/USD"})
        assert r.status_code == 200
        body = r.json()
        assert len(body) == 24
        assert body[-1]["close"] == pytest.approx(122000.0)
        assert set(body[0]) == {"timestamp", "open", "high", "low", "close"}
        assert r.headers["X-Chart-Source"] == "cryptocompare"
        assert r.headers["X-Chart-Synthetic"] == "false"
        assert r.headers["Cache-Control"] == "public, max-age=300"

    @pytest.mark.integration
    def test_second_request_served_from_cache(self, make_client, make_adapters, btc_trend, calls):
        client = make_client(make_adapters(cryptocompare={"series": {"BTC/USD": btc_trend}}))
        first = client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "BTC/USD"})
        second = client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "BTC/USD"})
        assert first.content == second.content
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.headers["X-Chart-Source"] == "cryptocompare"
        assert len(calls) == 1

    @pytest.mark.integration
    def test_request_after_ttl_goes_upstream_once_more(self, make_client, make_adapters,
                                                      btc_trend, calls, cache, fake_clock):
        client = make_client(make_adapters(cryptocompare={"series": {"BTC/USD": btc_trend}}))
        client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "BTC/USD"})
        stored = cache.get_stale(chart_key("BTC/USD", "1h")).stored_at_ms

        fake_clock.advance(301)
        r = client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "BTC/USD"})
        assert r.headers["X-Cache"] == "MISS"
        assert len(calls) == 2
        entry = cache.get_stale(chart_key("BTC/USD", "1h"))
        assert entry.stored_at_ms == stored + 301_000

    @pytest.mark.integration
    def test_timeframes_are_cached_separately(self, make_client, make_adapters, btc_trend, calls):
        client = make_client(make_adapters(cryptocompare={"series": {"BTC/USD": btc_trend}}))
        client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "BTC/USD"})
        client.get("/api/crypto/chart", params={"timeframe": "4h", "symbol": "BTC/USD"})
        assert len(calls) == 2

    @pytest.mark.integration
    def test_all_sources_failing_gives_tagged_synthetic_chart(self, make_client, make_adapters):
        client = make_client(make_adapters())
        r = client.get("/api/crypto/chart", params={"timeframe": "5m", "symbol": "ETH/USD"})
        assert r.status_code == 200
        assert len(r.json()) == 288
        assert r.headers["X-Chart-Source"].startswith("synthetic-")
        assert r.headers["X-Chart-Synthetic"] == "true"

    @pytest.mark.integration
    def test_unknown_timeframe_serves_hourly(self, make_client, make_adapters, btc_trend):
        client = make_client(make_adapters(cryptocompare={"series": {"BTC/USD": btc_trend}}))
        r = client.get("/api/crypto/chart", params={"timeframe": "3y", "symbol": "BTC/USD"})
        assert r.status_code == 200
        assert len(r.json()) == 24

    @pytest.mark.integration
    def test_unsupported_symbol_is_400(self, make_client, make_adapters, calls):
        client = make_client(make_adapters())
        r = client.get("/api/crypto/chart", params={"timeframe": "1h", "symbol": "DOGE/USD"})
        assert r.status_code == 400
        assert r.json() == {"error": "Symbol DOGE/USD is not supported"}
        assert calls == []


# ============================================================================
# /api/crypto/price
# ============================================================================

class TestPriceEndpoint:

    @pytest.mark.integration
    def test_four_from_dex_pair(self, make_client, make_adapters):
        client = make_client(make_adapters(dexscreener={"quotes": {"FOUR": (0.1558, -10.22)}}))
        r = client.get("/api/crypto/price", params={"symbol": "FOUR"})
        assert r.status_code == 200
        body = r.json()
        assert body["current_price"] == 0.1558
        assert body["price_change_percentage_24h"] == -10.22
        assert body["price_change_24h"] < 0
        assert {"total_volume", "market_cap"} <= set(body)
        assert r.headers["X-Price-Source"] == "dexscreener"
        assert r.headers["Cache-Control"] == "public, max-age=30"

    @pytest.mark.integration
    def test_default_symbol_is_bnb(self, make_client, make_adapters):
        client = make_client(make_adapters(cryptocompare={"quotes": {"BNB/USD": (1150.0, 1.0)}}))
        assert client.get("/api/crypto/price").json()["symbol"] == "BNB/USD"

    @pytest.mark.integration
    def test_secondary_source_when_primary_fails(self, make_client, make_adapters, calls):
        client = make_client(make_adapters(
            cryptocompare={"error": RuntimeError("down")},
            coingecko={"quotes": {"ETH/USD": (4480.0, -0.9)}},
        ))
        r = client.get("/api/crypto/price", params={"symbol": "ETH/USD"})
        assert r.headers["X-Price-Source"] == "coingecko"
        assert [c[0] for c in calls] == ["cryptocompare", "coingecko"]

    @pytest.mark.integration
    def test_exhausted_chain_is_502(self, make_client, make_adapters):
        client = make_client(make_adapters())
        r = client.get("/api/crypto/price", params={"symbol": "BTC/USD"})
        assert r.status_code == 502
        assert r.json() == {"error": "No price data available for BTC/USD"}

    @pytest.mark.integration
    def test_unsupported_symbol_is_400_without_network(self, make_client, make_adapters, calls):
        client = make_client(make_adapters())
        r = client.get("/api/crypto/price", params={"symbol": "NOPE"})
        assert r.status_code == 400
        assert "error" in r.json()
        assert calls == []

    @pytest.mark.integration
    def test_unexpected_failure_is_json_500(self, make_client, make_adapters):
        client = make_client(make_adapters())
        client.app.state.service.price = AsyncMock(side_effect=RuntimeError("kaboom"))
        r = client.get("/api/crypto/price", params={"symbol": "BTC/USD"})
        assert r.status_code == 500
        assert r.json() == {"error": "Internal server error"}


# ============================================================================
# /api/crypto/market-prices
# ============================================================================

class TestMarketPrices:

    @pytest.mark.integration
    def test_all_members_fresh(self, make_client, make_adapters):
        client = make_client(make_adapters(
            cryptocompare={"quotes": {"BTC/USD": (122000.0, 1.0), "ETH/USD": (4480.0, 2.0),
                                      "BNB/USD": (1150.0, 3.0)}},
            dexscreener={"quotes": {"FOUR": (0.1558, -10.22)}},
        ))
        r = client.get("/api/crypto/market-prices")
        body = r.json()
        assert [t["symbol"] for t in body["data"]] == ["BTC/USD", "ETH/USD", "BNB/USD", "FOUR"]
        assert body["fresh"] is True
        assert "fallback" not in body
        assert r.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
        assert r.headers["Pragma"] == "no-cache"
        assert r.headers["Expires"] == "0"

    @pytest.mark.integration
    def test_failed_member_uses_static_value(self, make_client, make_adapters):
        client = make_client(make_adapters(
            cryptocompare={"quotes": {"BTC/USD": (122000.0, 1.0), "ETH/USD": (4480.0, 2.0),
                                      "BNB/USD": (1150.0, 3.0)}},
        ))
        body = client.get("/api/crypto/market-prices").json()
        four = body["data"][-1]
        assert four == {"symbol": "FOUR", "price": 0.00703518, "change": 31.33, "source": "synthetic-static"}
        assert body["fallback"] is True

    @pytest.mark.integration
    def test_never_cached(self, make_client, make_adapters, calls):
        client = make_client(make_adapters(dexscreener={"quotes": {"FOUR": (0.1558, -10.22)}}))
        client.get("/api/crypto/market-prices")
        first = len(calls)
        client.get("/api/crypto/market-prices")
        assert len(calls) == 2 * first


# ============================================================================
# /api/crypto/fear-greed
# ============================================================================

class TestFearGreed:

    @pytest.mark.integration
    def test_basket_scenario(self, make_client, make_adapters):
        client = make_client(make_adapters(cryptocompare={"quotes": {
            "BTC/USD": (122000.0, 5.0), "ETH/USD": (4480.0, 3.0), "BNB/USD": (1150.0, 2.0)}}))
        r = client.get("/api/crypto/fear-greed")
        body = r.json()
        assert body["value"] == 65
        assert body["classification"] == "Greed"
        assert body["calculation"]["symbolsAnalyzed"] == 3
        assert {"averageChange", "volatility"} <= set(body["calculation"])
        assert r.headers["Cache-Control"] == "public, max-age=60"

    @pytest.mark.integration
    def test_internal_error_returns_neutral(self, make_client, make_adapters):
        estimator = SentimentEstimator(jitter=0)
        estimator.estimate = AsyncMock(side_effect=RuntimeError("boom"))
        client = make_client(make_adapters(), estimator=estimator)
        r = client.get("/api/crypto/fear-greed")
        assert r.status_code == 200
        body = r.json()
        assert (body["value"], body["classification"], body["error"]) == (50, "Neutral", True)


# ============================================================================
# Symbols, health, RPC proxy, websocket
# ============================================================================

class TestAuxiliaryRoutes:

    @pytest.mark.integration
    def test_symbols(self, make_client, make_adapters):
        body = make_client(make_adapters()).get("/api/crypto/symbols").json()
        assert {s["symbol"] for s in body["symbols"]} >= {"BTC/USD", "FOUR", "PUMP/USD"}
        assert body["timeframes"]["1h"] == {"interval": 3600, "count": 24}
        assert body["default_timeframe"] == "1h"

    @pytest.mark.integration
    def test_health(self, make_client, make_adapters):
        body = make_client(make_adapters(birdeye={"available": False})).get("/health").json()
        assert body["status"] == "healthy"
        assert body["adapters"]["birdeye"] is False
        assert "entries" in body["cache"]

    @pytest.mark.integration
    def test_bsc_rpc_passthrough(self, make_client, make_adapters):
        client = make_client(make_adapters())
        reply = {"jsonrpc": "2.0", "id": 7, "result": "0x38"}
        client.app.state.http.post = AsyncMock(return_value=httpx.Response(200, json=reply))
        r = client.post("/api/bsc-rpc-proxy", json={"jsonrpc": "2.0", "id": 7, "method": "eth_chainId"})
        assert r.status_code == 200
        assert r.json() == reply
        sent = client.app.state.http.post.call_args
        assert sent.kwargs["json"]["method"] == "eth_chainId"

    @pytest.mark.integration
    def test_bsc_rpc_failure_is_jsonrpc_error(self, make_client, make_adapters):
        client = make_client(make_adapters())
        client.app.state.http.post = AsyncMock(side_effect=httpx.ConnectError("down"))
        r = client.post("/api/bsc-rpc-proxy", json={"jsonrpc": "2.0", "id": 9, "method": "eth_blockNumber"})
        assert r.status_code == 500
        assert r.json() == {"jsonrpc": "2.0", "error": {"code": -32603, "message": "Internal error"}, "id": 9}

    @pytest.mark.integration
    def test_websocket_pushes_quotes(self, make_client, make_adapters):
        client = make_client(make_adapters(cryptocompare={"quotes": {"BTC/USD": (122000.0, 1.0)}}))
        with client.websocket_connect("/ws/price?symbol=BTC/USD") as ws:
            data = ws.receive_json()
        assert data["ws"] is True
        assert data["current_price"] == 122000.0

    @pytest.mark.integration
    def test_websocket_rejects_unknown_symbol(self, make_client, make_adapters):
        client = make_client(make_adapters())
        with client.websocket_connect("/ws/price?symbol=NOPE") as ws:
            data = ws.receive_json()
        assert data["error"] == "Symbol NOPE is not supported"
