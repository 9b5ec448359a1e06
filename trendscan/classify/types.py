"""Trend and turn classification types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Trend(str, Enum):
    """Per-symbol trend label. UNSET means never classified."""

    NEUTRAL = "NEUTRAL"
    UP = "UP"
    DOWN = "DOWN"
    UNSET = ""

    @classmethod
    def parse(cls, value: "Trend | str | None") -> "Trend":
        if value is None:
            return cls.UNSET
        return cls(value)


class TurnType(str, Enum):
    """Outcome of turn detection for one tick."""

    CONFIRM = "CONFIRM"
    NEAR = "NEAR"
    NONE = ""

    @property
    def is_alert(self) -> bool:
        return self is not TurnType.NONE


OPPOSITES: dict[Trend, Trend] = {
    Trend.UP: Trend.DOWN,
    Trend.DOWN: Trend.UP,
}


@dataclass(frozen=True)
class TrendBand:
    """
    Hysteresis zone around the moving average.

    Prices inside [lower, upper] (inclusive) never change the trend.
    """

    ma: float
    band_pct: float

    @property
    def lower(self) -> float:
        return self.ma * (1 - self.band_pct / 100)

    @property
    def upper(self) -> float:
        return self.ma * (1 + self.band_pct / 100)

    def contains(self, price: float) -> bool:
        return self.lower <= price <= self.upper
