"""
Rolling scan history with clear-on-overflow.

Holds up to `capacity` visited symbols. The push that would exceed
capacity empties the buffer instead of evicting the oldest entry.
"""

from __future__ import annotations


class ScanHistory:
    """Fixed-capacity log of visited symbols."""

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: list[str] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @capacity.setter
    def capacity(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"capacity must be >= 1, got {value}")
        self._capacity = value
        if len(self._items) > value:
            self._items = []

    def push(self, symbol: str) -> None:
        self._items.append(symbol)
        if len(self._items) > self._capacity:
            self._items = []

    def snapshot(self) -> list[str]:
        """Copy of the current history, oldest first."""
        return list(self._items)

    def clear(self) -> None:
        self._items = []

    def __len__(self) -> int:
        return len(self._items)
