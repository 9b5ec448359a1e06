"""Market data adapters."""

from trendscan.broker.mexc_market import (
    MarketDataProvider,
    MarketDataError,
    InsufficientHistoryError,
    MexcMarketClient,
    mexc_symbol,
)

__all__ = [
    "MarketDataProvider",
    "MarketDataError",
    "InsufficientHistoryError",
    "MexcMarketClient",
    "mexc_symbol",
]
