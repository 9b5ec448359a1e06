"""
Scan configuration: validated settings plus the ordered symbol list.

Settings are validated at this boundary; the scheduler never sees an
invalid configuration. Wire keys are camelCase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class ConfigurationError(ValueError):
    """Raised when a settings or symbols payload is rejected."""

    pass


class ScanSettings(BaseModel):
    """Mutable-by-replacement scan settings."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    # Neutral band half-width around MA30 (0.3 means ±0.3%)
    trend_band_pct: float = Field(default=0.3, gt=0, lt=100)
    # Distance to the reversal boundary that counts as NEAR
    near_pct: float = Field(default=0.15, ge=0)

    # Display limits, consumed by viewers
    max_active_near: int = Field(default=200, ge=1)
    max_active_confirm: int = Field(default=200, ge=1)
    scan_show_batch: int = Field(default=100, ge=1)
    scan_history_max: int = Field(default=1000, ge=1)

    # Optional RSI agreement filter (off by default)
    rsi_filter: bool = False
    rsi_threshold: float = Field(default=50.0, ge=0, le=100)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def merged(self, updates: dict[str, Any] | None) -> "ScanSettings":
        """
        Return a new validated settings object with `updates` applied.

        Raises:
            ConfigurationError: If the merged settings are invalid
        """
        if updates is None:
            return self
        if not isinstance(updates, dict):
            raise ConfigurationError("settings must be an object")
        if not updates:
            return self
        aliases = {
            (info.alias or name): name for name, info in ScanSettings.model_fields.items()
        }
        data = self.model_dump()
        for key, value in updates.items():
            data[aliases.get(key, key)] = value
        try:
            return ScanSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e


def normalize_symbols(symbols: Iterable[Any]) -> tuple[str, ...]:
    """
    Upper-case, strip, drop empties, and de-duplicate (first occurrence wins).

    Raises:
        ConfigurationError: If `symbols` is not a list of scalars
    """
    if isinstance(symbols, (str, bytes)) or not isinstance(symbols, (list, tuple)):
        raise ConfigurationError("symbols must be a list")

    seen: set[str] = set()
    out: list[str] = []
    for raw in symbols:
        if isinstance(raw, (dict, list, tuple)):
            raise ConfigurationError(f"Invalid symbol entry: {raw!r}")
        sym = str(raw).strip().upper()
        if sym and sym not in seen:
            seen.add(sym)
            out.append(sym)
    return tuple(out)


@dataclass(frozen=True)
class ScanConfig:
    """One immutable generation of scan configuration."""

    symbols: tuple[str, ...] = ()
    settings: ScanSettings = field(default_factory=ScanSettings)
