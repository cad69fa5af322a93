from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Literal

from retrotrade.clock.playback import (
    BASE_INTERVAL_S,
    ClockConfig,
    ClockState,
    ClockStatus,
    PlaybackClock,
)
from retrotrade.clock.scheduler import AsyncioScheduler, Scheduler
from retrotrade.data.feed import DataFeed, YahooChartFeed, fetch_with_fallback
from retrotrade.data.model import PriceBar, PriceSeries
from retrotrade.data.synthetic import SyntheticConfig, coerce_start
from retrotrade.errors import InvalidTransition, NotTradable, TradeRejected
from retrotrade.ledger.metrics import ReplayMetrics, compute_metrics
from retrotrade.ledger.portfolio import (
    Fill,
    Portfolio,
    buy,
    max_buy_quantity,
    open_portfolio,
    revalue,
    sell,
    total_return_pct,
    unrealized_pl,
    unrealized_pl_pct,
)
from retrotrade.viewport.drag import DragSession, ViewportController
from retrotrade.viewport.window import (
    DEFAULT_VISIBLE_CANDLES,
    MAX_CANDLES,
    MIN_CANDLES,
    ViewportConfig,
    ViewportState,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SimulationConfig:
    symbol: str = "AAPL"
    start_date: str = "2023-01-01"
    initial_cash: float = 10_000.0
    speed: float = 1.0
    base_interval_s: float = BASE_INTERVAL_S
    visible_count: int = DEFAULT_VISIBLE_CANDLES
    seed: int | None = 0

    def __post_init__(self) -> None:
        if not self.symbol.strip():
            raise ValueError("symbol must be non-empty")
        if not math.isfinite(self.initial_cash) or self.initial_cash <= 0.0:
            raise ValueError("initial_cash must be finite and positive")
        if not math.isfinite(self.speed) or self.speed <= 0.0:
            raise ValueError("speed must be finite and positive")
        if not math.isfinite(self.base_interval_s) or self.base_interval_s < 0.0:
            raise ValueError("base_interval_s must be finite and non-negative")
        if not (MIN_CANDLES <= self.visible_count <= MAX_CANDLES):
            raise ValueError(f"visible_count must be in [{MIN_CANDLES}, {MAX_CANDLES}]")

    @property
    def start_day(self) -> date:
        return coerce_start(self.start_date)


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view handed to the presentation layer."""

    symbol: str
    is_authoritative: bool
    loading: bool
    clock: ClockState
    portfolio: Portfolio
    viewport: ViewportState | None
    visible_bars: tuple[PriceBar, ...]
    current_bar: PriceBar | None
    error_message: str | None
    initial_cash: float
    unrealized_pl: float
    unrealized_pl_pct: float
    total_return_pct: float
    max_buy: int
    fills: int

    @property
    def tradable(self) -> bool:
        return self.current_bar is not None and self.clock.status in (
            ClockStatus.PAUSED,
            ClockStatus.RUNNING,
        )


SnapshotListener = Callable[[SessionSnapshot], None]


class SimulationSession:
    """Composes feed, clock, ledger and viewport behind one command surface.

    All commands run on the event loop thread that owns the scheduler.
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        *,
        feed: DataFeed | None = None,
        scheduler: Scheduler | None = None,
        synthetic: SyntheticConfig | None = None,
    ) -> None:
        self._config = config if config is not None else SimulationConfig()
        self._feed = feed if feed is not None else YahooChartFeed()
        self._synthetic = (
            synthetic if synthetic is not None else SyntheticConfig(seed=self._config.seed)
        )
        self._clock = PlaybackClock(
            scheduler if scheduler is not None else AsyncioScheduler(),
            ClockConfig(base_interval_s=self._config.base_interval_s, speed=self._config.speed),
            on_tick=self._on_tick,
        )
        self._series: PriceSeries | None = None
        self._is_authoritative = False
        self._portfolio = open_portfolio(self._config.initial_cash)
        self._viewport: ViewportController | None = None
        self._fills: list[Fill] = []
        self._equity_curve: list[float] = []
        self._error: str | None = None
        # Generation of the in-flight load, if any; a reset orphans it.
        self._loading_generation: int | None = None
        self._generation = 0
        self._listeners: list[SnapshotListener] = []

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def clock(self) -> ClockState:
        return self._clock.state

    @property
    def portfolio(self) -> Portfolio:
        return self._portfolio

    @property
    def viewport(self) -> ViewportState | None:
        return self._viewport.state if self._viewport is not None else None

    @property
    def series(self) -> PriceSeries | None:
        return self._series

    @property
    def is_authoritative(self) -> bool:
        return self._is_authoritative

    @property
    def loading(self) -> bool:
        return self._loading_generation == self._generation

    @property
    def fills(self) -> list[Fill]:
        return list(self._fills)

    @property
    def equity_curve(self) -> list[float]:
        """Total value after each revealed bar."""
        return list(self._equity_curve)

    @property
    def current_bar(self) -> PriceBar | None:
        state = self._clock.state
        if self._series is None or state.status is ClockStatus.IDLE:
            return None
        if not (0 <= state.cursor < len(self._series)):
            return None
        return self._series[state.cursor]

    # -- lifecycle -------------------------------------------------------

    async def load(self) -> SessionSnapshot:
        """Fetch the series (falling back to synthetic data) and park the clock at bar 0."""
        if self.loading:
            raise InvalidTransition("a load is already in progress")
        if self._clock.state.status is not ClockStatus.IDLE:
            raise InvalidTransition("reset the session before loading a new series")

        cfg = self._config
        generation = self._generation
        self._loading_generation = generation
        self._notify()
        try:
            result = await asyncio.to_thread(
                fetch_with_fallback,
                self._feed,
                cfg.symbol,
                cfg.start_day,
                synthetic=self._synthetic,
            )
        finally:
            if self._loading_generation == generation:
                self._loading_generation = None
        if generation != self._generation:
            logger.info("discarding %s series loaded before a reset", cfg.symbol)
            return self.snapshot()

        series = result.series
        self._series = series
        self._is_authoritative = result.is_authoritative
        self._clock.load(len(series))
        self._portfolio = revalue(open_portfolio(cfg.initial_cash), series.close_at(0))
        self._viewport = ViewportController(
            1,
            ViewportConfig(visible_count=cfg.visible_count),
            on_change=self._on_viewport_change,
        )
        self._fills = []
        self._equity_curve = [self._portfolio.total_value]
        self._error = None
        logger.info(
            "loaded %d %s bars %s..%s (%s)",
            len(series),
            cfg.symbol,
            series[0].date.isoformat(),
            series[-1].date.isoformat(),
            "market data" if result.is_authoritative else "synthetic data",
        )
        self._notify()
        return self.snapshot()

    def reset(self) -> SessionSnapshot:
        self._generation += 1
        self._clock.reset()
        if self._viewport is not None:
            self._viewport.close()
        self._series = None
        self._is_authoritative = False
        self._portfolio = open_portfolio(self._config.initial_cash)
        self._viewport = None
        self._fills = []
        self._equity_curve = []
        self._error = None
        logger.info("session reset")
        self._notify()
        return self.snapshot()

    def close(self) -> None:
        """Tear down: cancel the armed tick and drop subscribers."""
        self._generation += 1
        self._clock.close()
        if self._viewport is not None:
            self._viewport.close()
        self._listeners.clear()

    async def __aenter__(self) -> SimulationSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    # -- playback --------------------------------------------------------

    def play(self) -> ClockState:
        state = self._clock.play()
        self._command_ok()
        return state

    def pause(self) -> ClockState:
        state = self._clock.pause()
        self._command_ok()
        return state

    def set_speed(self, multiplier: float) -> ClockState:
        state = self._clock.set_speed(multiplier)
        self._command_ok()
        return state

    def seek(self, index: int) -> ClockState:
        """Fast-forward to ``index`` while paused, revaluing every skipped bar."""
        before = self._clock.state.cursor
        state = self._clock.seek(index)
        for cursor in range(before + 1, state.cursor + 1):
            self._advance_to(cursor)
        self._command_ok()
        return state

    # -- trading ---------------------------------------------------------

    def buy(self, quantity: int) -> Portfolio:
        return self._trade("buy", quantity)

    def sell(self, quantity: int) -> Portfolio:
        return self._trade("sell", quantity)

    def _trade(self, side: Literal["buy", "sell"], quantity: int) -> Portfolio:
        try:
            bar = self._tradable_bar()
            op = buy if side == "buy" else sell
            nxt = op(self._portfolio, quantity, bar.close)
        except TradeRejected as exc:
            self._error = str(exc)
            logger.warning("%s %r rejected: %s", side, quantity, exc)
            self._notify()
            raise

        cursor = self._clock.state.cursor
        self._portfolio = nxt
        self._fills.append(
            Fill(
                cursor=cursor,
                date=bar.date.isoformat(),
                side=side,
                quantity=int(quantity),
                price=bar.close,
                cash_after=nxt.cash,
                shares_after=nxt.shares,
            )
        )
        self._equity_curve[-1] = nxt.total_value
        logger.info(
            "%s %d %s @ %.2f on %s (cash=%.2f shares=%d)",
            side,
            quantity,
            self._config.symbol,
            bar.close,
            bar.date.isoformat(),
            nxt.cash,
            nxt.shares,
        )
        self._command_ok()
        return nxt

    def _tradable_bar(self) -> PriceBar:
        status = self._clock.state.status
        if status in (ClockStatus.IDLE, ClockStatus.FINISHED):
            raise NotTradable(f"cannot trade while {status.value}")
        bar = self.current_bar
        if bar is None:
            raise NotTradable("no bar at the current cursor")
        if not math.isfinite(bar.close) or bar.close <= 0.0:
            raise NotTradable(f"no valid price on {bar.date.isoformat()} (close={bar.close})")
        return bar

    # -- viewport --------------------------------------------------------

    def pan(self, delta_px: float, viewport_width_px: float) -> ViewportState:
        return self._require_viewport().pan(delta_px, viewport_width_px)

    def zoom(self, delta: float) -> ViewportState:
        return self._require_viewport().zoom(delta)

    def begin_drag(self, x_px: float, viewport_width_px: float) -> DragSession:
        return self._require_viewport().begin_drag(x_px, viewport_width_px)

    def visible_bars(self) -> tuple[PriceBar, ...]:
        if self._series is None or self._viewport is None:
            return ()
        vp = self._viewport.state
        return tuple(self._series.window(vp.start_index, vp.end_index))

    def _require_viewport(self) -> ViewportController:
        if self._viewport is None:
            raise InvalidTransition("no series loaded")
        return self._viewport

    def _on_viewport_change(self, _state: ViewportState) -> None:
        self._command_ok()

    # -- snapshots -------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> SessionSnapshot:
        p = self._portfolio
        bar = self.current_bar
        return SessionSnapshot(
            symbol=self._config.symbol,
            is_authoritative=self._is_authoritative,
            loading=self.loading,
            clock=self._clock.state,
            portfolio=p,
            viewport=self.viewport,
            visible_bars=self.visible_bars(),
            current_bar=bar,
            error_message=self._error,
            initial_cash=self._config.initial_cash,
            unrealized_pl=unrealized_pl(p),
            unrealized_pl_pct=unrealized_pl_pct(p),
            total_return_pct=total_return_pct(p, self._config.initial_cash),
            max_buy=max_buy_quantity(p, bar.close) if bar is not None else 0,
            fills=len(self._fills),
        )

    def metrics(self) -> ReplayMetrics:
        return compute_metrics(
            equity_curve=self._equity_curve,
            initial_cash=self._config.initial_cash,
            fills=self._fills,
        )

    # -- internals -------------------------------------------------------

    def _on_tick(self, state: ClockState) -> None:
        if len(self._equity_curve) < state.cursor + 1:
            self._advance_to(state.cursor)
        logger.debug("tick cursor=%d status=%s", state.cursor, state.status.value)
        self._notify()

    def _advance_to(self, cursor: int) -> None:
        if self._series is None or self._viewport is None:
            return
        self._portfolio = revalue(self._portfolio, self._series.close_at(cursor))
        self._viewport.on_cursor_advance(cursor, cursor + 1)
        self._equity_curve.append(self._portfolio.total_value)

    def _command_ok(self) -> None:
        self._error = None
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)


async def load_and_start(
    config: SimulationConfig,
    *,
    feed: DataFeed | None = None,
    scheduler: Scheduler | None = None,
    synthetic: SyntheticConfig | None = None,
) -> SimulationSession:
    """Build a session, await its series and return it paused at the first bar."""
    session = SimulationSession(config, feed=feed, scheduler=scheduler, synthetic=synthetic)
    await session.load()
    return session
