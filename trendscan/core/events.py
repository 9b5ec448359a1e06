"""
Canonical Scan Event Schema for trendscan.

Every event pushed to viewers carries:
- event_id (uuid)
- kind (string enum: scan / alert / error / hello)
- timestamp (UTC ISO8601)
- payload (dict, already in viewer wire keys)

Events are transient. They are never written to disk.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    """All event kinds on the live stream."""

    SCAN = "scan"
    ALERT = "alert"
    ERROR = "error"
    HELLO = "hello"


class ScanEvent(BaseModel):
    """
    Immutable live-stream event.

    The payload keys are the viewer contract (camelCase) and are
    flattened into the top level of the wire object.
    """

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: EventKind
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    symbol: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def to_wire_dict(self) -> dict[str, Any]:
        """Convert to the flat dict sent to viewers."""
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.symbol is not None:
            data["sym"] = self.symbol
        data.update(self.payload)
        data["ts"] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Single-line JSON encoding (one event per line)."""
        return json.dumps(self.to_wire_dict(), separators=(",", ":"), default=str)


def create_event(
    kind: EventKind,
    payload: dict[str, Any] | None = None,
    *,
    symbol: str | None = None,
    timestamp: datetime | None = None,
) -> ScanEvent:
    """Factory function to create events with consistent defaults."""
    return ScanEvent(
        kind=kind,
        payload=payload or {},
        symbol=symbol,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def scan_event(
    symbol: str,
    scanning_batch: Sequence[str],
    scan_history: Sequence[str],
) -> ScanEvent:
    """Scan-progress event: the symbol just visited plus display window and history."""
    return create_event(
        EventKind.SCAN,
        payload={
            "scanningBatch": list(scanning_batch),
            "scanHistory": list(scan_history),
        },
        symbol=symbol,
    )


def alert_event(
    symbol: str,
    *,
    turn_type: str,
    direction: str,
    price: float,
    ma30: float,
    rsi14: float | None,
    dev_pct: float,
    ttl_ms: int,
) -> ScanEvent:
    """Turn alert (NEAR or CONFIRM) with its display time-to-live."""
    return create_event(
        EventKind.ALERT,
        payload={
            "type": turn_type,
            "dir": direction,
            "price": price,
            "ma30": ma30,
            "rsi14": rsi14,
            "devPct": dev_pct,
            "ttlMs": ttl_ms,
        },
        symbol=symbol,
    )


def error_event(symbol: str | None, message: str) -> ScanEvent:
    return create_event(EventKind.ERROR, payload={"message": message}, symbol=symbol)


def hello_event(snapshot: dict[str, Any]) -> ScanEvent:
    """Initial context for a new viewer: run state and configuration."""
    return create_event(
        EventKind.HELLO,
        payload={
            "running": snapshot.get("running", False),
            "settings": snapshot.get("settings", {}),
            "symbolsCount": snapshot.get("symbolsCount", 0),
        },
    )
