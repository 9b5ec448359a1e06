"""
Scan Scheduler - round-robin trend scanning with a single cursor.

One symbol per tick, fixed delay between ticks:
- Scan-progress event every tick, regardless of outcome
- Fetch price + daily closes, compute MA30/RSI14, classify trend, detect turn
- NEAR/CONFIRM alerts pass the dedup gate before broadcast
- Per-symbol failures become error events; nothing halts the loop
- No retries; the next visit one cycle later is the retry

The scheduler exclusively owns configuration, trend state, dedup state,
the cursor and the scan history. Configuration is swapped as a whole;
a tick in flight finishes against the generation it started with.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from trendscan.broker.mexc_market import InsufficientHistoryError, MarketDataProvider
from trendscan.classify.classifier import classify_trend, detect_turn, direction_label
from trendscan.classify.types import Trend, TurnType
from trendscan.core.events import ScanEvent, alert_event, error_event, scan_event
from trendscan.features.indicators import (
    MA_PERIOD,
    MIN_CLOSES,
    RSI_PERIOD,
    deviation_pct,
    moving_average,
    rsi,
)
from trendscan.services.broadcaster import EventBroadcaster
from trendscan.services.dedup import AlertDeduplicator
from trendscan.services.scan_config import (
    ScanConfig,
    ScanSettings,
    normalize_symbols,
)
from trendscan.services.scan_history import ScanHistory

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.45
DEFAULT_IDLE_INTERVAL = 1.5

# Display time-to-live per alert type
ALERT_TTL_MS: dict[TurnType, int] = {
    TurnType.NEAR: 3 * 60 * 1000,
    TurnType.CONFIRM: 5 * 60 * 1000,
}


class SchedulerState(str, Enum):
    """Scheduler operational states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


@dataclass(frozen=True)
class TickOutcome:
    """What happened to the symbol visited in one tick."""

    symbol: str
    trend: Trend | None = None
    turn: TurnType = TurnType.NONE
    alerted: bool = False
    error: str | None = None


class ScanScheduler:
    """
    Perpetual scan loop over the configured symbol list.

    Usage:
        scheduler = ScanScheduler(provider=market_client, broadcaster=broadcaster)
        scheduler.configure(symbols=["BTCUSDT", "ETHUSDT"])
        scheduler.start()
        # ... later ...
        await scheduler.aclose()
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        broadcaster: EventBroadcaster | None = None,
        settings: ScanSettings | None = None,
        symbols: Iterable[str] = (),
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        idle_interval: float = DEFAULT_IDLE_INTERVAL,
        dedup: AlertDeduplicator | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            provider: Market data source (fair price + daily closes)
            broadcaster: Event fan-out to viewers
            settings: Initial scan settings (defaults if omitted)
            symbols: Initial symbol list
            tick_interval: Delay between ticks, independent of list size
            idle_interval: Delay between checks while the list is empty
            dedup: Alert deduplicator (3 minute cooldown if omitted)
        """
        self.provider = provider
        self.broadcaster = broadcaster or EventBroadcaster()
        self.tick_interval = tick_interval
        self.idle_interval = idle_interval

        settings = settings or ScanSettings()
        self._config = ScanConfig(symbols=normalize_symbols(list(symbols)), settings=settings)
        self._trend_state: dict[str, Trend] = {}
        self._cursor = 0
        self._history = ScanHistory(settings.scan_history_max)
        self._dedup = dedup or AlertDeduplicator()

        self._running = False
        self._task: asyncio.Task | None = None

        # Stats
        self._ticks = 0
        self._alerts_emitted = 0
        self._alerts_suppressed = 0
        self._alerts_filtered = 0
        self._errors_emitted = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def config(self) -> ScanConfig:
        return self._config

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._running else SchedulerState.STOPPED

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def history(self) -> ScanHistory:
        return self._history

    def trend_of(self, symbol: str) -> Trend:
        """Last classified trend for a symbol (UNSET if never classified)."""
        return self._trend_state.get(symbol.upper(), Trend.UNSET)

    def trend_state(self) -> dict[str, Trend]:
        return dict(self._trend_state)

    def snapshot(self) -> dict[str, Any]:
        """Run state and configuration, as sent in hello events and /api/state."""
        return {
            "running": self._running,
            "symbolsCount": len(self._config.symbols),
            "settings": self._config.settings.to_wire(),
        }

    def scanning_batch(self) -> list[str]:
        """Display window: up to scan_show_batch symbols from the cursor, wrapping."""
        symbols = self._config.symbols
        if not symbols:
            return []
        size = min(max(1, self._config.settings.scan_show_batch), len(symbols))
        return [symbols[(self._cursor + i) % len(symbols)] for i in range(size)]

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "state": self.state.value,
            "cursor": self._cursor,
            "symbols": len(self._config.symbols),
            "ticks": self._ticks,
            "alerts_emitted": self._alerts_emitted,
            "alerts_suppressed": self._alerts_suppressed,
            "alerts_filtered": self._alerts_filtered,
            "errors_emitted": self._errors_emitted,
            "history_size": len(self._history),
            "tick_interval": self.tick_interval,
        }

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(
        self,
        symbols: Iterable[Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Replace the symbol list and/or merge settings.

        A new symbol list resets the cursor and all trend state. Everything
        is validated before anything is swapped in.

        Raises:
            ConfigurationError: If symbols or settings are invalid
        """
        new_settings = self._config.settings.merged(settings)
        new_symbols = (
            normalize_symbols(symbols) if symbols is not None else self._config.symbols
        )

        self._config = ScanConfig(symbols=new_symbols, settings=new_settings)
        if symbols is not None:
            self._cursor = 0
            self._trend_state = {}
        self._history.capacity = new_settings.scan_history_max

        logger.info(
            f"Scan config updated: {len(new_symbols)} symbols, "
            f"band ±{new_settings.trend_band_pct}%, near {new_settings.near_pct}%"
        )
        return self.snapshot()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _emit(self, event: ScanEvent) -> None:
        self.broadcaster.broadcast(event)

    async def tick(self) -> TickOutcome | None:
        """
        Visit exactly one symbol.

        Returns:
            The tick outcome, or None if the symbol list is empty
            (no cursor step consumed)
        """
        config = self._config
        trend_state = self._trend_state
        symbols = config.symbols
        if not symbols:
            return None

        symbol = symbols[self._cursor % len(symbols)]
        self._cursor = (self._cursor + 1) % len(symbols)
        self._ticks += 1

        self._history.push(symbol)
        self._emit(scan_event(symbol, self.scanning_batch(), self._history.snapshot()))

        try:
            return await self._evaluate(symbol, config.settings, trend_state)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning(f"Scan failed for {symbol}: {message}")
            self._errors_emitted += 1
            self._emit(error_event(symbol, message))
            return TickOutcome(symbol=symbol, error=message)

    async def _evaluate(
        self,
        symbol: str,
        settings: ScanSettings,
        trend_state: dict[str, Trend],
    ) -> TickOutcome:
        price = await self.provider.fetch_fair_price(symbol)
        closes = await self.provider.fetch_daily_closes(symbol, MIN_CLOSES)
        if len(closes) < MIN_CLOSES:
            raise InsufficientHistoryError(symbol, len(closes), MIN_CLOSES)

        ma30 = moving_average(closes, MA_PERIOD)
        rsi14 = rsi(closes, RSI_PERIOD)

        previous = trend_state.get(symbol, Trend.UNSET)
        current = classify_trend(price, ma30, previous, settings.trend_band_pct)
        turn = detect_turn(
            price, ma30, previous, current, settings.trend_band_pct, settings.near_pct
        )
        dev_pct = deviation_pct(price, ma30)

        # Only a fully computed tick updates trend state
        trend_state[symbol] = current

        if not turn.is_alert:
            return TickOutcome(symbol=symbol, trend=current, turn=turn)

        if self._rsi_disagrees(current, rsi14, settings):
            self._alerts_filtered += 1
            logger.debug(f"{symbol} {turn.value} filtered by RSI {rsi14:.1f}")
            return TickOutcome(symbol=symbol, trend=current, turn=turn)

        if self._dedup.should_suppress(symbol, turn):
            self._alerts_suppressed += 1
            return TickOutcome(symbol=symbol, trend=current, turn=turn)

        self._emit(alert_event(
            symbol,
            turn_type=turn.value,
            direction=direction_label(previous, current),
            price=price,
            ma30=ma30,
            rsi14=rsi14,
            dev_pct=dev_pct,
            ttl_ms=ALERT_TTL_MS[turn],
        ))
        self._alerts_emitted += 1
        logger.info(f"{turn.value} {symbol} {direction_label(previous, current)} @ {price}")
        return TickOutcome(symbol=symbol, trend=current, turn=turn, alerted=True)

    @staticmethod
    def _rsi_disagrees(current: Trend, rsi14: float | None, settings: ScanSettings) -> bool:
        """RSI filter: drop UP alerts below the threshold and DOWN alerts above it."""
        if not settings.rsi_filter or rsi14 is None:
            return False
        if current is Trend.UP and rsi14 < settings.rsi_threshold:
            return True
        if current is Trend.DOWN and rsi14 > settings.rsi_threshold:
            return True
        return False

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        """Main scheduler loop."""
        logger.info(
            f"Scanner started. Symbols: {len(self._config.symbols)}, "
            f"Interval: {self.tick_interval}s"
        )

        while self._running:
            if not self._config.symbols:
                await asyncio.sleep(self.idle_interval)
                continue

            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Unexpected error in scan loop: {e}")

            await asyncio.sleep(self.tick_interval)

        logger.info("Scanner stopped")

    def start(self) -> None:
        """Start scanning (no-op if already running). Requires a running event loop."""
        if self._running:
            logger.debug("Scanner already running")
            return

        self._running = True
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_loop())

    def stop(self) -> None:
        """Stop scanning at the next tick boundary (no-op if already stopped)."""
        if not self._running:
            return
        logger.info("Stopping scanner...")
        self._running = False

    async def aclose(self, timeout: float = 5.0) -> None:
        """Stop and wait for the loop task to finish."""
        self.stop()
        task = self._task
        if task is None or task.done():
            return

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.warning("Scanner task did not stop cleanly, cancelling")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
