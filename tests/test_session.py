import asyncio
import math
import threading
from datetime import date, timedelta

import pytest

from retrotrade.clock.playback import ClockStatus
from retrotrade.clock.scheduler import ManualScheduler
from retrotrade.data.feed import DataFeed, FeedResult
from retrotrade.data.model import PriceBar, PriceSeries
from retrotrade.errors import (
    DataFeedError,
    InsufficientFunds,
    InvalidQuantity,
    InvalidTransition,
    NotTradable,
)
from retrotrade.session.orchestrator import (
    SessionSnapshot,
    SimulationConfig,
    SimulationSession,
    load_and_start,
)

CLOSES = [100.0, 110.0, 120.0, 90.0, 130.0]


def _series(closes: list[float]) -> PriceSeries:
    d0 = date(2023, 1, 2)
    return PriceSeries.from_bars(
        PriceBar(
            date=d0 + timedelta(days=i),
            open=c,
            high=c + 1.0,
            low=c - 1.0,
            close=c,
            volume=1_000.0,
        )
        for i, c in enumerate(closes)
    )


class _StubFeed(DataFeed):
    def __init__(self, closes: list[float]) -> None:
        self.calls = 0
        self._series = _series(closes)

    def fetch(self, symbol: str, start: date) -> FeedResult:
        self.calls += 1
        return FeedResult(series=self._series, is_authoritative=True)


class _DownFeed(DataFeed):
    def fetch(self, symbol: str, start: date) -> FeedResult:
        raise DataFeedError("service unavailable")


def _start(
    closes: list[float] = CLOSES, **overrides: object
) -> tuple[SimulationSession, ManualScheduler]:
    sched = ManualScheduler()
    config = SimulationConfig(**overrides)  # type: ignore[arg-type]
    session = asyncio.run(load_and_start(config, feed=_StubFeed(closes), scheduler=sched))
    return session, sched


def test_five_bar_replay_end_to_end() -> None:
    session, sched = _start(initial_cash=10_000.0, base_interval_s=10.0)
    snap = session.snapshot()
    assert snap.clock.status is ClockStatus.PAUSED
    assert snap.clock.cursor == 0
    assert snap.is_authoritative
    assert snap.current_bar is not None and snap.current_bar.close == 100.0

    session.buy(10)
    session.play()
    sched.advance(10.0)
    assert session.clock.cursor == 1
    assert session.portfolio.total_value == 9_000.0 + 10 * 110.0

    sched.advance(1_000.0)
    p = session.portfolio
    assert session.clock.status is ClockStatus.FINISHED
    assert session.clock.cursor == 4
    assert p.total_value == p.cash + p.shares * CLOSES[4]
    assert p.total_value == 10_300.0
    assert session.equity_curve == [9_000.0 + 10 * c for c in CLOSES]
    assert sched.pending == 0

    with pytest.raises(NotTradable, match="FINISHED"):
        session.buy(1)
    assert session.snapshot().error_message is not None

    m = session.metrics()
    assert math.isclose(m.total_return_pct, 3.0)
    assert math.isclose(m.max_drawdown, 1.0 - 9_900.0 / 10_200.0)
    assert m.buys == 1


def test_fills_are_journaled_at_the_cursor_close() -> None:
    session, sched = _start()
    session.buy(10)
    session.play()
    sched.advance(20.0)
    session.sell(4)
    fills = session.fills
    assert [(f.cursor, f.side, f.quantity, f.price) for f in fills] == [
        (0, "buy", 10, 100.0),
        (2, "sell", 4, 120.0),
    ]
    assert fills[1].date == "2023-01-04"
    assert fills[1].shares_after == 6
    assert session.equity_curve[-1] == session.portfolio.total_value


def test_rejected_trade_sets_transient_error_and_keeps_state() -> None:
    session, _ = _start(initial_cash=1_000.0)
    before = session.portfolio
    with pytest.raises(InsufficientFunds):
        session.buy(11)
    with pytest.raises(InvalidQuantity):
        session.sell(0)
    assert session.portfolio == before
    assert session.snapshot().error_message is not None

    session.pause()
    assert session.snapshot().error_message is None


def test_commands_before_load_are_rejected() -> None:
    session = SimulationSession(feed=_StubFeed(CLOSES), scheduler=ManualScheduler())
    with pytest.raises(InvalidTransition):
        session.play()
    with pytest.raises(NotTradable, match="IDLE"):
        session.buy(1)
    with pytest.raises(InvalidTransition, match="no series"):
        session.pan(10.0, 480.0)
    assert session.snapshot().current_bar is None
    assert session.visible_bars() == ()


def test_feed_failure_falls_back_to_synthetic_series() -> None:
    sched = ManualScheduler()
    session = asyncio.run(
        load_and_start(SimulationConfig(seed=5), feed=_DownFeed(), scheduler=sched)
    )
    snap = session.snapshot()
    assert not snap.is_authoritative
    assert session.series is not None and len(session.series) == 365
    assert snap.clock.status is ClockStatus.PAUSED
    assert snap.portfolio.total_value == 10_000.0


def test_reset_during_load_discards_late_series() -> None:
    gate = threading.Event()

    class _GatedFeed(DataFeed):
        def fetch(self, symbol: str, start: date) -> FeedResult:
            gate.wait(5.0)
            return FeedResult(series=_series(CLOSES), is_authoritative=True)

    async def scenario() -> tuple[SimulationSession, SessionSnapshot]:
        session = SimulationSession(feed=_GatedFeed(), scheduler=ManualScheduler())
        task = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        assert session.snapshot().loading
        session.reset()
        gate.set()
        return session, await task

    session, snap = asyncio.run(scenario())
    assert session.series is None
    assert snap.clock.status is ClockStatus.IDLE
    assert not snap.loading


def test_second_load_requires_reset() -> None:
    session, _ = _start()
    with pytest.raises(InvalidTransition, match="reset"):
        asyncio.run(session.load())
    session.reset()
    assert session.clock.status is ClockStatus.IDLE
    assert session.equity_curve == []
    asyncio.run(session.load())
    assert session.clock.status is ClockStatus.PAUSED


def test_seek_revalues_skipped_bars() -> None:
    session, _ = _start()
    session.buy(10)
    session.seek(3)
    assert session.clock.cursor == 3
    assert session.clock.status is ClockStatus.PAUSED
    assert session.portfolio.equity == 900.0
    assert len(session.equity_curve) == 4
    assert session.viewport is not None and session.viewport.end_index == 3


def test_viewport_follows_revealed_bars() -> None:
    session, sched = _start(closes=[100.0 + i for i in range(80)])
    vp = session.viewport
    assert vp is not None and (vp.start_index, vp.end_index) == (0, 0)

    session.play()
    sched.advance(790.0)
    vp = session.viewport
    assert vp is not None
    assert (vp.start_index, vp.end_index) == (20, 79)
    assert len(session.visible_bars()) == 60

    session.zoom(-1.0)
    vp = session.viewport
    assert vp is not None and vp.visible_count == 54


def test_subscribers_receive_snapshots_until_unsubscribed() -> None:
    session, sched = _start()
    seen: list[int] = []
    unsubscribe = session.subscribe(lambda s: seen.append(s.clock.cursor))

    session.play()
    sched.advance(20.0)
    assert seen[-2:] == [1, 2]

    unsubscribe()
    count = len(seen)
    sched.advance(10.0)
    assert len(seen) == count


def test_close_cancels_pending_tick() -> None:
    session, sched = _start()
    session.play()
    assert sched.pending == 1
    session.close()
    assert sched.pending == 0
    sched.advance(100.0)
    assert session.clock.cursor == 0


def test_simulation_config_validation() -> None:
    with pytest.raises(ValueError, match="symbol"):
        SimulationConfig(symbol=" ")
    with pytest.raises(ValueError, match="initial_cash"):
        SimulationConfig(initial_cash=-1.0)
    with pytest.raises(ValueError, match="visible_count"):
        SimulationConfig(visible_count=400)
    assert SimulationConfig(start_date="bogus").start_day == date(2023, 1, 1)


def test_bar_without_valid_price_is_not_tradable() -> None:
    session, _ = _start(closes=[0.0, 10.0])
    before = session.portfolio
    with pytest.raises(NotTradable, match="no valid price"):
        session.buy(1)
    assert session.portfolio == before
    assert session.snapshot().error_message is not None
    assert session.fills == []


def test_load_again_right_after_reset_during_load() -> None:
    gate = threading.Event()

    class _GatedFeed(DataFeed):
        def fetch(self, symbol: str, start: date) -> FeedResult:
            gate.wait(5.0)
            return FeedResult(series=_series(CLOSES), is_authoritative=True)

    async def scenario() -> SimulationSession:
        session = SimulationSession(feed=_GatedFeed(), scheduler=ManualScheduler())
        stale = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        session.reset()
        assert not session.snapshot().loading

        fresh = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        assert session.loading
        gate.set()
        await stale
        await fresh
        return session

    session = asyncio.run(scenario())
    assert not session.loading
    assert session.series is not None and len(session.series) == len(CLOSES)
    assert session.clock.status is ClockStatus.PAUSED
