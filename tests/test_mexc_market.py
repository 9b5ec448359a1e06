"""
Tests for the MEXC market data client.

Uses httpx.MockTransport; no network access.
"""

import asyncio

import httpx
import pytest

from trendscan.broker.mexc_market import (
    InsufficientHistoryError,
    MarketDataError,
    MexcMarketClient,
    mexc_symbol,
)

BASE = "https://proxy.test"


def _run(handler, coro_factory):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = MexcMarketClient(http, base_url=BASE + "/")
            return await coro_factory(client)

    return asyncio.run(run())


class TestMexcSymbol:
    """Tests for symbol normalization."""

    def test_usdt_suffix_gets_underscore(self):
        assert mexc_symbol("btcusdt") == "BTC_USDT"

    def test_already_normalized(self):
        assert mexc_symbol(" eth_usdt ") == "ETH_USDT"

    def test_other_symbols_unchanged(self):
        assert mexc_symbol("BTCUSD") == "BTCUSD"
        assert mexc_symbol("USDT") == "USDT"
        assert mexc_symbol("") == ""


class TestFairPrice:
    """Tests for fetch_fair_price."""

    def test_parses_fair_price(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["symbol"] = request.url.params["symbol"]
            return httpx.Response(200, json={
                "success": True,
                "data": {"lastPrice": 64000.5, "fairPrice": "64001.25"},
            })

        price = _run(handler, lambda c: c.fetch_fair_price("BTCUSDT"))

        assert price == 64001.25
        assert seen == {"path": "/api/v1/contract/ticker", "symbol": "BTC_USDT"}

    def test_falls_back_to_last_price(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"lastPrice": 12.5}})

        assert _run(handler, lambda c: c.fetch_fair_price("X_USDT")) == 12.5

    def test_unsuccessful_payload(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "code": 1001})

        with pytest.raises(MarketDataError, match="ticker fail"):
            _run(handler, lambda c: c.fetch_fair_price("X_USDT"))

    def test_non_finite_price(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"fairPrice": "NaN"}})

        with pytest.raises(MarketDataError, match="fairPrice invalid"):
            _run(handler, lambda c: c.fetch_fair_price("X_USDT"))

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(MarketDataError, match="HTTP 503"):
            _run(handler, lambda c: c.fetch_fair_price("X_USDT"))

    def test_malformed_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(MarketDataError, match="malformed JSON"):
            _run(handler, lambda c: c.fetch_fair_price("X_USDT"))

    def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MarketDataError, match="request failed"):
            _run(handler, lambda c: c.fetch_fair_price("X_USDT"))


class TestDailyCloses:
    """Tests for fetch_daily_closes."""

    def test_parses_closes_oldest_first(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["interval"] = request.url.params["interval"]
            return httpx.Response(200, json={
                "success": True,
                "data": {"close": [1, "2.5", None, "bad", 3.0]},
            })

        closes = _run(handler, lambda c: c.fetch_daily_closes("ethusdt", 3))

        assert closes == [1.0, 2.5, 3.0]
        assert seen == {"path": "/api/v1/contract/kline/ETH_USDT", "interval": "Day1"}

    def test_insufficient_history(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"close": [1.0, 2.0]}})

        with pytest.raises(InsufficientHistoryError) as exc_info:
            _run(handler, lambda c: c.fetch_daily_closes("A_USDT", 31))

        assert exc_info.value.available == 2
        assert exc_info.value.required == 31
        assert isinstance(exc_info.value, MarketDataError)

    def test_missing_data_is_insufficient(self):
        def handler(request):
            return httpx.Response(200, json={"success": True})

        with pytest.raises(InsufficientHistoryError):
            _run(handler, lambda c: c.fetch_daily_closes("A_USDT", 1))


class TestContracts:
    """Tests for fetch_contract_symbols."""

    def test_filters_usdt_contracts(self):
        def handler(request):
            assert request.url.path == "/api/v1/contract/detail"
            return httpx.Response(200, json={"data": [
                {"symbol": "BTC_USDT"},
                {"symbol": "BTC_USD"},
                {"symbol": "ETH_USDT"},
                {"name": "no symbol"},
            ]})

        assert _run(handler, lambda c: c.fetch_contract_symbols()) == ["BTC_USDT", "ETH_USDT"]

    def test_malformed_detail(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"oops": 1}})

        with pytest.raises(MarketDataError):
            _run(handler, lambda c: c.fetch_contract_symbols())
