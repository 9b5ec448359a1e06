from trendscan.features.indicators import (
    MA_PERIOD,
    RSI_PERIOD,
    MIN_CLOSES,
    moving_average,
    rsi,
    deviation_pct,
)

__all__ = [
    "MA_PERIOD",
    "RSI_PERIOD",
    "MIN_CLOSES",
    "moving_average",
    "rsi",
    "deviation_pct",
]
