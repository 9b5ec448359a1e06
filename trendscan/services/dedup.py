"""
Alert Deduplicator - per-symbol cooldown for repeated turn alerts.

A (symbol, turn type) pair is suppressed when the same type was emitted
for that symbol less than `cooldown_seconds` ago. Different types never
suppress each other, and every non-suppressed call restarts the clock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from trendscan.classify.types import TurnType

DEFAULT_COOLDOWN_SECONDS = 180.0


@dataclass(frozen=True)
class DedupEntry:
    """Last emitted alert for a symbol."""

    turn_type: TurnType
    emitted_at: float


class AlertDeduplicator:
    """
    Cooldown gate for alert emission.

    Usage:
        dedup = AlertDeduplicator()
        if not dedup.should_suppress("BTC_USDT", TurnType.NEAR):
            broadcast(...)
    """

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] | None = None,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[str, DedupEntry] = {}

    def should_suppress(self, symbol: str, turn_type: TurnType | str) -> bool:
        """
        Check the cooldown and record the emission when not suppressed.

        Returns:
            True if this alert repeats the last one within the cooldown
        """
        kind = TurnType(turn_type)
        now = self._clock()
        last = self._entries.get(symbol)

        if (
            last is not None
            and last.turn_type is kind
            and (now - last.emitted_at) < self.cooldown_seconds
        ):
            return True

        self._entries[symbol] = DedupEntry(turn_type=kind, emitted_at=now)
        return False

    def last_entry(self, symbol: str) -> DedupEntry | None:
        return self._entries.get(symbol)

    def reset(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
