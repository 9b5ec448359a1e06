"""Trend classification: band hysteresis state machine and turn detection."""

from trendscan.classify.types import Trend, TurnType, TrendBand
from trendscan.classify.classifier import (
    classify_trend,
    detect_turn,
    direction_label,
    distance_pct,
    is_reversal,
)

__all__ = [
    "Trend",
    "TurnType",
    "TrendBand",
    "classify_trend",
    "detect_turn",
    "direction_label",
    "distance_pct",
    "is_reversal",
]
