"""
Tests for ScanScheduler.

Coverage:
- Round-robin cursor and wrap-around
- Scan-progress event every tick, display window, history
- Trend state machine scenario with a CONFIRM alert
- NEAR dedup, RSI filter, alert TTLs
- Per-symbol failure isolation (error event, trend state preserved)
- Config replacement resets cursor/trend state; in-flight tick isolation
- Idempotent start/stop and the background loop
"""

import asyncio

import pytest

from trendscan.broker.mexc_market import MarketDataError
from trendscan.classify.types import Trend, TurnType
from trendscan.core.events import EventKind
from trendscan.features.indicators import MIN_CLOSES
from trendscan.services.broadcaster import EventBroadcaster
from trendscan.services.scan_config import ConfigurationError, ScanSettings
from trendscan.services.scheduler import (
    ALERT_TTL_MS,
    ScanScheduler,
    SchedulerState,
)


class FakeProvider:
    """In-memory market data: flat closes at 100 and scripted prices."""

    def __init__(self, prices=None, closes=None, fail=()):
        self.prices = {k: list(v) for k, v in (prices or {}).items()}
        self.closes = closes if closes is not None else [100.0] * MIN_CLOSES
        self.fail = set(fail)
        self.calls: list[str] = []

    async def fetch_fair_price(self, symbol: str) -> float:
        self.calls.append(symbol)
        if symbol in self.fail:
            raise MarketDataError(f"ticker HTTP 500 for {symbol}")
        seq = self.prices.get(symbol, [100.0])
        return seq.pop(0) if len(seq) > 1 else seq[0]

    async def fetch_daily_closes(self, symbol: str, min_count: int) -> list[float]:
        return list(self.closes)


def _make(symbols, provider=None, **settings):
    broadcaster = EventBroadcaster(queue_size=10_000)
    scheduler = ScanScheduler(
        provider=provider or FakeProvider(),
        broadcaster=broadcaster,
        settings=ScanSettings(**settings),
        symbols=symbols,
        tick_interval=0.01,
        idle_interval=0.01,
    )
    return scheduler, broadcaster.subscribe()


def _drain(subscription):
    events = []
    while subscription.pending():
        events.append(subscription.get_nowait())
    return events


def _run_ticks(scheduler, n):
    async def run():
        return [await scheduler.tick() for _ in range(n)]

    return asyncio.run(run())


class TestCursor:
    """Tests for round-robin selection."""

    def test_initial_state(self):
        scheduler, _ = _make(["a", "b"])

        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.cursor == 0
        assert scheduler.config.symbols == ("A", "B")

    def test_cursor_is_n_mod_len(self):
        scheduler, _ = _make(["A", "B", "C"])

        outcomes = _run_ticks(scheduler, 7)

        assert scheduler.cursor == 7 % 3
        assert [o.symbol for o in outcomes] == ["A", "B", "C", "A", "B", "C", "A"]

    def test_empty_list_consumes_nothing(self):
        scheduler, sub = _make([])

        assert _run_ticks(scheduler, 3) == [None, None, None]
        assert scheduler.cursor == 0
        assert _drain(sub) == []

    def test_replacing_list_resets_cursor_and_trends(self):
        scheduler, _ = _make(["A", "B", "C"])
        _run_ticks(scheduler, 2)
        assert scheduler.trend_of("A") is Trend.NEUTRAL

        scheduler.configure(symbols=["x", "A"])

        assert scheduler.cursor == 0
        assert scheduler.trend_state() == {}
        assert scheduler.config.symbols == ("X", "A")

    def test_settings_only_update_keeps_state(self):
        scheduler, _ = _make(["A", "B", "C"])
        _run_ticks(scheduler, 2)

        snapshot = scheduler.configure(settings={"nearPct": 0.2})

        assert scheduler.cursor == 2
        assert scheduler.trend_of("A") is Trend.NEUTRAL
        assert snapshot["settings"]["nearPct"] == 0.2

    def test_invalid_config_changes_nothing(self):
        scheduler, _ = _make(["A", "B"])
        _run_ticks(scheduler, 1)

        with pytest.raises(ConfigurationError):
            scheduler.configure(symbols=["Z"], settings={"trendBandPct": -1})

        assert scheduler.config.symbols == ("A", "B")
        assert scheduler.cursor == 1
        assert scheduler.trend_of("A") is Trend.NEUTRAL


class TestScanEvents:
    """Tests for scan-progress events."""

    def test_scan_event_every_tick(self):
        scheduler, sub = _make(["A", "B"], provider=FakeProvider(fail={"B"}))

        _run_ticks(scheduler, 2)
        kinds = [e.kind for e in _drain(sub)]

        assert kinds == [EventKind.SCAN, EventKind.SCAN, EventKind.ERROR]

    def test_scanning_batch_window_wraps(self):
        scheduler, sub = _make(["A", "B", "C"], scan_show_batch=2)

        _run_ticks(scheduler, 3)
        batches = [e.payload["scanningBatch"] for e in _drain(sub) if e.kind is EventKind.SCAN]

        assert batches == [["B", "C"], ["C", "A"], ["A", "B"]]

    def test_scanning_batch_capped_by_list(self):
        scheduler, sub = _make(["A", "B"], scan_show_batch=100)

        _run_ticks(scheduler, 1)

        assert _drain(sub)[0].payload["scanningBatch"] == ["B", "A"]

    def test_history_clears_on_overflow(self):
        scheduler, sub = _make(["A", "B"], scan_history_max=3)

        _run_ticks(scheduler, 4)
        histories = [e.payload["scanHistory"] for e in _drain(sub)]

        assert histories == [["A"], ["A", "B"], ["A", "B", "A"], []]


class TestAlerts:
    """Tests for trend classification and alert emission."""

    def test_confirm_scenario(self):
        """100 -> 100.5 -> 99.0 gives NEUTRAL -> UP -> DOWN with one CONFIRM."""
        provider = FakeProvider(prices={"A": [100.0, 100.5, 99.0]})
        scheduler, sub = _make(["A"], provider=provider)

        outcomes = _run_ticks(scheduler, 3)

        assert [o.trend for o in outcomes] == [Trend.NEUTRAL, Trend.UP, Trend.DOWN]
        assert [o.turn for o in outcomes] == [TurnType.NONE, TurnType.NONE, TurnType.CONFIRM]

        alerts = [e for e in _drain(sub) if e.kind is EventKind.ALERT]
        assert len(alerts) == 1
        wire = alerts[0].to_wire_dict()
        assert wire["type"] == "CONFIRM"
        assert wire["dir"] == "UP→DOWN"
        assert wire["price"] == 99.0
        assert wire["ma30"] == 100.0
        assert wire["rsi14"] == 100.0
        assert wire["devPct"] == pytest.approx(-1.0)
        assert wire["ttlMs"] == 5 * 60 * 1000

    def test_near_alert_and_dedup(self):
        provider = FakeProvider(prices={"A": [101.0, 99.75, 99.75]})
        scheduler, sub = _make(["A"], provider=provider)

        outcomes = _run_ticks(scheduler, 3)

        assert [o.turn for o in outcomes] == [TurnType.NONE, TurnType.NEAR, TurnType.NEAR]
        assert [o.alerted for o in outcomes] == [False, True, False]

        alerts = [e for e in _drain(sub) if e.kind is EventKind.ALERT]
        assert len(alerts) == 1
        assert alerts[0].payload["ttlMs"] == ALERT_TTL_MS[TurnType.NEAR] == 180000
        assert alerts[0].payload["dir"] == "UP"
        assert scheduler.get_stats()["alerts_suppressed"] == 1

    def test_confirm_after_near_not_suppressed(self):
        provider = FakeProvider(prices={"A": [101.0, 99.75, 99.0]})
        scheduler, sub = _make(["A"], provider=provider)

        _run_ticks(scheduler, 3)
        types = [e.payload["type"] for e in _drain(sub) if e.kind is EventKind.ALERT]

        assert types == ["NEAR", "CONFIRM"]

    def test_rsi_filter_drops_contrary_alert(self):
        """Flat closes give RSI 100, which disagrees with a DOWN turn."""
        provider = FakeProvider(prices={"A": [101.0, 99.0]})
        scheduler, sub = _make(["A"], provider=provider, rsi_filter=True)

        outcomes = _run_ticks(scheduler, 2)

        assert outcomes[1].turn is TurnType.CONFIRM
        assert outcomes[1].alerted is False
        assert [e for e in _drain(sub) if e.kind is EventKind.ALERT] == []
        assert scheduler.get_stats()["alerts_filtered"] == 1

    def test_rsi_filter_off_by_default(self):
        provider = FakeProvider(prices={"A": [101.0, 99.0]})
        scheduler, _ = _make(["A"], provider=provider)

        outcomes = _run_ticks(scheduler, 2)

        assert outcomes[1].alerted is True


class TestFailures:
    """Tests for per-symbol failure isolation."""

    def test_error_event_and_next_symbol_continues(self):
        provider = FakeProvider(fail={"B"})
        scheduler, sub = _make(["A", "B", "C"], provider=provider)

        outcomes = _run_ticks(scheduler, 3)

        assert outcomes[1].error == "ticker HTTP 500 for B"
        assert outcomes[2].trend is Trend.NEUTRAL
        errors = [e for e in _drain(sub) if e.kind is EventKind.ERROR]
        assert len(errors) == 1
        assert errors[0].symbol == "B"
        assert errors[0].payload["message"] == "ticker HTTP 500 for B"

    def test_failure_preserves_last_trend(self):
        provider = FakeProvider(prices={"A": [101.0]})
        scheduler, _ = _make(["A"], provider=provider)
        _run_ticks(scheduler, 1)
        assert scheduler.trend_of("A") is Trend.UP

        provider.fail.add("A")
        outcome = _run_ticks(scheduler, 1)[0]

        assert outcome.error is not None
        assert scheduler.trend_of("A") is Trend.UP

    def test_insufficient_history_is_error(self):
        provider = FakeProvider(closes=[100.0] * 10)
        scheduler, sub = _make(["A"], provider=provider)

        outcome = _run_ticks(scheduler, 1)[0]

        assert "not enough candles" in outcome.error
        assert scheduler.trend_of("A") is Trend.UNSET
        assert scheduler.get_stats()["errors_emitted"] == 1

    def test_unexpected_exception_is_contained(self):
        class Broken(FakeProvider):
            async def fetch_daily_closes(self, symbol, min_count):
                raise RuntimeError()

        scheduler, sub = _make(["A"], provider=Broken())

        outcome = _run_ticks(scheduler, 1)[0]

        assert outcome.error == "RuntimeError"


class TestConfigIsolation:
    """A tick in flight finishes against the configuration it started with."""

    def test_replacement_during_fetch_does_not_leak_trend(self):
        class GatedProvider(FakeProvider):
            def __init__(self):
                super().__init__(prices={"A": [101.0]})
                self.gate = asyncio.Event()

            async def fetch_fair_price(self, symbol):
                await self.gate.wait()
                return await super().fetch_fair_price(symbol)

        async def run():
            provider = GatedProvider()
            scheduler, _ = _make(["A"], provider=provider)

            in_flight = asyncio.create_task(scheduler.tick())
            await asyncio.sleep(0)
            scheduler.configure(symbols=["A", "B"])
            provider.gate.set()
            outcome = await in_flight
            return scheduler, outcome

        scheduler, outcome = asyncio.run(run())

        assert outcome.trend is Trend.UP
        assert scheduler.trend_of("A") is Trend.UNSET
        assert scheduler.cursor == 0


class TestLoop:
    """Tests for start/stop and the background loop."""

    def test_start_stop_idempotent(self):
        async def run():
            scheduler, _ = _make(["A"])
            scheduler.start()
            task = scheduler._task
            scheduler.start()
            assert scheduler._task is task
            assert scheduler.state == SchedulerState.RUNNING

            await asyncio.sleep(0.05)
            scheduler.stop()
            scheduler.stop()
            await scheduler.aclose()
            return scheduler, task

        scheduler, task = asyncio.run(run())

        assert task.done()
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.get_stats()["ticks"] >= 1

    def test_loop_survives_failing_symbol(self):
        provider = FakeProvider(fail={"B"})

        async def run():
            scheduler, _ = _make(["A", "B"], provider=provider)
            scheduler.start()
            await asyncio.sleep(0.1)
            await scheduler.aclose()
            return scheduler

        scheduler = asyncio.run(run())

        assert provider.calls.count("A") >= 2
        assert provider.calls.count("B") >= 2
        assert scheduler.get_stats()["errors_emitted"] >= 2

    def test_loop_idles_on_empty_list(self):
        async def run():
            scheduler, sub = _make([])
            scheduler.start()
            await asyncio.sleep(0.05)
            await scheduler.aclose()
            return scheduler, sub

        scheduler, sub = asyncio.run(run())

        assert scheduler.get_stats()["ticks"] == 0
        assert _drain(sub) == []

    def test_snapshot(self):
        scheduler, _ = _make(["A", "B"])
        snapshot = scheduler.snapshot()

        assert snapshot["running"] is False
        assert snapshot["symbolsCount"] == 2
        assert snapshot["settings"]["trendBandPct"] == 0.3
