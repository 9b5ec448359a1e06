"""
Trend Classifier and Turn Detector.

Three-state trend machine {NEUTRAL, UP, DOWN} driven by price against a
percentage band around MA30. Inside the band the previous trend holds;
crossing a band edge moves to UP or DOWN.

The turn detector compares previous/current trend:
- CONFIRM: strict UP<->DOWN reversal (always wins over NEAR)
- NEAR: price within near_pct of the boundary it would have to cross
- NONE: otherwise

All functions are DETERMINISTIC and hold no state. The caller owns the
previous-trend map and passes the relevant entry in.
"""

from __future__ import annotations

from trendscan.classify.types import OPPOSITES, Trend, TrendBand, TurnType


def classify_trend(
    price: float,
    ma30: float,
    previous: Trend | str | None,
    band_pct: float,
) -> Trend:
    """
    Determine the current trend label.

    Args:
        price: Current (fair) price
        ma30: 30-period moving average of daily closes
        previous: Previous trend label (UNSET/"" if never classified)
        band_pct: Half-width of the neutral band in percent

    Returns:
        UP above the band, DOWN below it, otherwise the previous trend
        (NEUTRAL when there was none)
    """
    prev = Trend.parse(previous)
    band = TrendBand(ma=ma30, band_pct=band_pct)

    if price > band.upper:
        return Trend.UP
    if price < band.lower:
        return Trend.DOWN
    return prev if prev is not Trend.UNSET else Trend.NEUTRAL


def distance_pct(price: float, boundary: float) -> float:
    """Distance from price to boundary, as a percentage of price."""
    return abs(price - boundary) / price * 100


def is_reversal(previous: Trend | str | None, current: Trend | str | None) -> bool:
    prev = Trend.parse(previous)
    return OPPOSITES.get(prev) is Trend.parse(current)


def detect_turn(
    price: float,
    ma30: float,
    previous: Trend | str | None,
    current: Trend | str | None,
    band_pct: float,
    near_pct: float,
) -> TurnType:
    """
    Classify this tick as a confirmed reversal, a near-boundary approach, or neither.

    The NEAR boundary depends on the previous trend:
    UP watches the lower edge, DOWN watches the upper edge,
    NEUTRAL/UNSET watches whichever edge is closer. Comparison is inclusive.
    """
    prev = Trend.parse(previous)

    if is_reversal(prev, current):
        return TurnType.CONFIRM

    band = TrendBand(ma=ma30, band_pct=band_pct)

    if prev is Trend.UP:
        dist = distance_pct(price, band.lower)
    elif prev is Trend.DOWN:
        dist = distance_pct(price, band.upper)
    else:
        dist = min(distance_pct(price, band.lower), distance_pct(price, band.upper))

    if dist <= near_pct:
        return TurnType.NEAR
    return TurnType.NONE


def direction_label(previous: Trend | str | None, current: Trend | str | None) -> str:
    """Human-readable direction for an alert."""
    prev = Trend.parse(previous)
    cur = Trend.parse(current)

    if prev is Trend.UP and cur is Trend.DOWN:
        return "UP→DOWN"
    if prev is Trend.DOWN and cur is Trend.UP:
        return "DOWN→UP"
    if cur in (Trend.UP, Trend.DOWN):
        return cur.value
    return Trend.NEUTRAL.value
