"""
Technical Indicators for trend scanning.

Pure functions over daily closing prices (oldest first, most recent last).
All functions are DETERMINISTIC: same input → same output.
"""

from __future__ import annotations

from typing import Sequence

MA_PERIOD = 30
RSI_PERIOD = 14

# Enough history for MA30 and RSI14 (period + 1 closes)
MIN_CLOSES = max(MA_PERIOD, RSI_PERIOD + 1) + 1


def moving_average(closes: Sequence[float], period: int = MA_PERIOD) -> float:
    """
    Simple Moving Average over the last `period` closes.

    Args:
        closes: Sequence of closing prices (most recent last)
        period: Number of periods

    Returns:
        Arithmetic mean of the trailing window

    Raises:
        ValueError: If fewer than `period` closes are supplied
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    if len(closes) < period:
        raise ValueError(
            f"moving_average needs {period} closes, got {len(closes)}"
        )
    return sum(closes[-period:]) / period


def rsi(closes: Sequence[float], period: int = RSI_PERIOD) -> float | None:
    """
    Relative Strength Index (simple averages, no Wilder smoothing).

    Uses the last `period + 1` closes. Flat days count as gains of zero.

    Args:
        closes: Sequence of closing prices (most recent last)
        period: RSI period (default 14)

    Returns:
        RSI value (0-100), 100.0 when there are no down days,
        or None if insufficient data
    """
    if len(closes) < period + 1:
        return None

    window = closes[-(period + 1):]
    gains = 0.0
    losses = 0.0

    for i in range(1, len(window)):
        change = window[i] - window[i - 1]
        if change >= 0:
            gains += change
        else:
            losses += -change

    avg_gain = gains / period
    avg_loss = losses / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def deviation_pct(price: float, ma: float) -> float:
    """Signed percentage deviation of price from its moving average."""
    return (price - ma) / ma * 100
