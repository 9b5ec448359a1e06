"""
MEXC Futures Market Data Client.

Fetches fair price and daily closes for USDT perpetual contracts through
an HTTP proxy in front of contract.mexc.com.

Scope:
- Read-only market data
- No retries (the scheduler's next cycle is the retry)
- Every failure surfaces as MarketDataError
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

KLINE_LOOKBACK_DAYS = 120


class MarketDataProvider(Protocol):
    """Per-symbol market data consumed by the scan scheduler."""

    async def fetch_fair_price(self, symbol: str) -> float:
        ...

    async def fetch_daily_closes(self, symbol: str, min_count: int) -> list[float]:
        ...


class MarketDataError(Exception):
    """Raised when market data retrieval fails."""

    pass


class InsufficientHistoryError(MarketDataError):
    """Raised when fewer closes are available than the indicators need."""

    def __init__(self, symbol: str, available: int, required: int):
        self.symbol = symbol
        self.available = available
        self.required = required
        super().__init__(
            f"not enough candles for {symbol}: {available} < {required}"
        )


def mexc_symbol(symbol: str) -> str:
    """
    Normalize a user symbol to MEXC contract form.

    BTCUSDT -> BTC_USDT; BTC_USDT and anything else are upper-cased as-is.
    """
    s = str(symbol or "").strip().upper()
    if not s or "_" in s:
        return s
    if s.endswith("USDT") and len(s) > 4:
        return f"{s[:-4]}_USDT"
    return s


def _finite(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class MexcMarketClient:
    """
    Async client for the MEXC contract API.

    Usage:
        async with httpx.AsyncClient(timeout=10.0) as http:
            client = MexcMarketClient(http, base_url="https://contract.mexc.com")
            price = await client.fetch_fair_price("BTCUSDT")
    """

    def __init__(self, http_client: httpx.AsyncClient, base_url: str):
        """
        Initialize the market data client.

        Args:
            http_client: Shared httpx.AsyncClient (owned by the caller)
            base_url: Proxy base URL, without trailing slash
        """
        self.http = http_client
        self.base_url = base_url.rstrip("/")

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http.get(
                url, params=params, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as e:
            raise MarketDataError(f"request failed: {e}") from e

        if response.status_code != 200:
            raise MarketDataError(
                f"HTTP {response.status_code} {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise MarketDataError(f"malformed JSON from {path}") from e

    async def fetch_fair_price(self, symbol: str) -> float:
        """
        Get the current fair price for a contract.

        Raises:
            MarketDataError: On HTTP failure, unsuccessful payload, or non-finite price
        """
        msym = mexc_symbol(symbol)
        data = await self._get_json("/api/v1/contract/ticker", params={"symbol": msym})

        if not isinstance(data, dict) or not data.get("success") or not data.get("data"):
            raise MarketDataError(f"ticker fail for {msym}")

        ticker = data["data"]
        if not isinstance(ticker, dict):
            raise MarketDataError(f"ticker fail for {msym}")

        raw = ticker.get("fairPrice")
        if raw is None:
            raw = ticker.get("fair_price")
        if raw is None:
            raw = ticker.get("lastPrice")

        price = _finite(raw)
        if price is None:
            raise MarketDataError(f"fairPrice invalid for {msym}: {raw!r}")
        return price

    async def fetch_daily_closes(self, symbol: str, min_count: int) -> list[float]:
        """
        Get daily closes, oldest first.

        Raises:
            InsufficientHistoryError: If fewer than `min_count` valid closes
            MarketDataError: On HTTP failure or malformed payload
        """
        msym = mexc_symbol(symbol)
        now_sec = int(time.time())
        params = {
            "interval": "Day1",
            "start": now_sec - KLINE_LOOKBACK_DAYS * 24 * 60 * 60,
            "end": now_sec,
        }
        data = await self._get_json(f"/api/v1/contract/kline/{msym}", params=params)

        body = data.get("data") if isinstance(data, dict) else None
        raw_closes = body.get("close") if isinstance(body, dict) else None
        if not isinstance(raw_closes, list):
            raw_closes = []

        closes = [c for c in (_finite(v) for v in raw_closes) if c is not None]
        if len(closes) < min_count:
            raise InsufficientHistoryError(msym, len(closes), min_count)
        return closes

    async def fetch_contract_symbols(self) -> list[str]:
        """List USDT-margined perpetual contract symbols."""
        data = await self._get_json("/api/v1/contract/detail")
        contracts = data.get("data") if isinstance(data, dict) else None
        if not isinstance(contracts, list):
            raise MarketDataError("contract detail payload malformed")

        symbols = []
        for contract in contracts:
            sym = contract.get("symbol") if isinstance(contract, dict) else None
            if isinstance(sym, str) and sym.endswith("_USDT"):
                symbols.append(sym)

        logger.debug(f"Fetched {len(symbols)} USDT contracts")
        return symbols
