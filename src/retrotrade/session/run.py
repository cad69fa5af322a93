from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from retrotrade.clock.playback import BASE_INTERVAL_S, SPEED_PRESETS, ClockStatus
from retrotrade.clock.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from retrotrade.data.feed import CsvFeed, DataFeed, SyntheticFeed, YahooChartFeed
from retrotrade.data.synthetic import SyntheticConfig
from retrotrade.data.yahoo_history import DEFAULT_BASE_URL, YahooFeedConfig
from retrotrade.errors import TradeRejected
from retrotrade.ledger.portfolio import max_buy_quantity, max_sell_quantity
from retrotrade.viewport.window import DEFAULT_VISIBLE_CANDLES

from .orchestrator import SessionSnapshot, SimulationConfig, SimulationSession, load_and_start
from .orders import MAX_QUANTITY, ScriptedOrder, load_orders, schedule_orders

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BarRecord:
    index: int
    date: str
    close: float
    change_pct: float
    cash: float
    shares: int
    equity: float
    total_value: float


@dataclass(frozen=True, slots=True)
class Rejection:
    index: int
    side: str
    quantity: int | str
    reason: str


class OrderRunner:
    """Snapshot listener that executes scripted orders as their bar is revealed.

    Orders run once per bar, before the bar's closing state is recorded.
    """

    def __init__(
        self, session: SimulationSession, schedule: dict[int, list[ScriptedOrder]]
    ) -> None:
        self._session = session
        self._schedule = schedule
        self._seen = -1
        self.records: list[BarRecord] = []
        self.rejections: list[Rejection] = []
        self.finished = asyncio.Event()

    def __call__(self, snap: SessionSnapshot) -> None:
        if snap.loading or snap.clock.status is ClockStatus.IDLE:
            return
        cursor = snap.clock.cursor
        if cursor > self._seen:
            # Seen is bumped first; trades notify again with the same cursor.
            self._seen = cursor
            for order in self._schedule.get(cursor, []):
                self._execute(cursor, order)
            self._record(cursor)
        if snap.clock.status is ClockStatus.FINISHED:
            self.finished.set()

    def _execute(self, cursor: int, order: ScriptedOrder) -> None:
        p = self._session.portfolio
        qty: int
        if order.quantity == MAX_QUANTITY:
            bar = self._session.current_bar
            price = bar.close if bar is not None else 0.0
            qty = max_buy_quantity(p, price) if order.side == "buy" else max_sell_quantity(p)
        else:
            qty = cast(int, order.quantity)
        try:
            if order.side == "buy":
                self._session.buy(qty)
            else:
                self._session.sell(qty)
        except TradeRejected as exc:
            self.rejections.append(
                Rejection(index=cursor, side=order.side, quantity=order.quantity, reason=str(exc))
            )

    def _record(self, cursor: int) -> None:
        bar = self._session.current_bar
        if bar is None:
            return
        p = self._session.portfolio
        self.records.append(
            BarRecord(
                index=cursor,
                date=bar.date.isoformat(),
                close=bar.close,
                change_pct=bar.change_pct,
                cash=p.cash,
                shares=p.shares,
                equity=p.equity,
                total_value=p.total_value,
            )
        )


def _load_config(path: Path | None) -> dict[str, object]:
    if path is None:
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("config must be a JSON object")
    return cast(dict[str, object], data)


def _section(cfg: dict[str, object], name: str) -> dict[str, Any]:
    obj = cfg.get(name, {})
    return cast(dict[str, Any], obj) if isinstance(obj, dict) else {}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Headless daily-bar replay with scripted orders.")
    p.add_argument("--config", type=Path, default=None, help="Optional JSON config.")
    p.add_argument("--symbol", type=str, default=None, help="Ticker symbol, e.g. AAPL.")
    p.add_argument("--start-date", type=str, default=None, help="First day (YYYY-MM-DD).")
    p.add_argument("--cash", type=float, default=None, help="Initial cash.")
    presets = ", ".join(f"{s:g}" for s in SPEED_PRESETS)
    p.add_argument(
        "--speed", type=float, default=None, help=f"Speed multiplier (presets: {presets})."
    )
    p.add_argument(
        "--base-interval-s",
        type=float,
        default=None,
        help=f"Seconds per bar at 1x (default {BASE_INTERVAL_S:g}).",
    )
    p.add_argument("--seed", type=int, default=None, help="Seed for the synthetic series.")
    source = p.add_mutually_exclusive_group()
    source.add_argument("--csv", type=Path, default=None, help="Replay a local OHLCV CSV.")
    source.add_argument(
        "--offline",
        action="store_true",
        help="Skip the network and replay a synthetic series.",
    )
    p.add_argument("--orders", type=Path, default=None, help="JSON order script.")
    p.add_argument(
        "--fast",
        action="store_true",
        help="Run on a virtual clock instead of sleeping between bars.",
    )
    p.add_argument("--output", type=Path, default=None, help="Summary JSON output.")
    p.add_argument(
        "--output-bars",
        type=Path,
        default=None,
        help="Optional per-bar CSV output.",
    )
    p.add_argument(
        "--output-fills",
        type=Path,
        default=None,
        help="Optional fills CSV output.",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )
    return p


def build_simulation_config(
    args: argparse.Namespace, cfg: dict[str, object]
) -> SimulationConfig:
    sim_cfg = _section(cfg, "simulation")
    vp_cfg = _section(cfg, "viewport")

    def pick(flag: object, key: str, default: object) -> Any:
        return flag if flag is not None else sim_cfg.get(key, default)

    seed_raw = pick(args.seed, "seed", 0)
    return SimulationConfig(
        symbol=str(pick(args.symbol, "symbol", "AAPL")),
        start_date=str(pick(args.start_date, "start_date", "2023-01-01")),
        initial_cash=float(pick(args.cash, "initial_cash", 10_000.0)),
        speed=float(pick(args.speed, "speed", 1.0)),
        base_interval_s=float(pick(args.base_interval_s, "base_interval_s", BASE_INTERVAL_S)),
        visible_count=int(vp_cfg.get("visible_count", DEFAULT_VISIBLE_CANDLES)),
        seed=None if seed_raw is None else int(seed_raw),
    )


def build_feed(
    args: argparse.Namespace, cfg: dict[str, object], synthetic: SyntheticConfig
) -> DataFeed:
    if args.csv is not None:
        return CsvFeed(args.csv)
    feed_cfg = _section(cfg, "feed")
    if args.offline or str(feed_cfg.get("source", "yahoo")) == "synthetic":
        return SyntheticFeed(synthetic)
    return YahooChartFeed(
        YahooFeedConfig(
            base_url=str(feed_cfg.get("base_url", DEFAULT_BASE_URL)),
            chart_range=str(feed_cfg.get("chart_range", "5y")),
            timeout_s=float(feed_cfg.get("timeout_s", 15.0)),
            proxy_template=feed_cfg.get("proxy_template"),
        )
    )


async def replay(
    config: SimulationConfig,
    *,
    feed: DataFeed,
    synthetic: SyntheticConfig,
    orders: list[ScriptedOrder],
    scheduler: Scheduler | None = None,
) -> tuple[SimulationSession, OrderRunner]:
    """Load, play to the end and return the closed session with its order log.

    With a ``ManualScheduler`` the replay fast-forwards through virtual time.
    """
    sched = scheduler if scheduler is not None else AsyncioScheduler()
    session = await load_and_start(config, feed=feed, scheduler=sched, synthetic=synthetic)
    series = session.series
    if series is None:
        raise ValueError("session has no series after load")
    runner = OrderRunner(session, schedule_orders(orders, series))
    session.subscribe(runner)
    try:
        runner(session.snapshot())
        session.play()
        if isinstance(sched, ManualScheduler):
            while session.clock.status is ClockStatus.RUNNING and sched.run_next():
                pass
        else:
            await _wait_until_stopped(session, runner)
        if session.clock.status is not ClockStatus.FINISHED:
            raise RuntimeError(
                f"replay stopped at bar {session.clock.cursor} while {session.clock.status.value}"
            )
    finally:
        session.close()
    return session, runner


async def _wait_until_stopped(
    session: SimulationSession, runner: OrderRunner, poll_s: float = 0.5
) -> None:
    # A tick that raises pauses the clock without notifying listeners.
    while session.clock.status is ClockStatus.RUNNING:
        try:
            await asyncio.wait_for(runner.finished.wait(), timeout=poll_s)
        except asyncio.TimeoutError:
            continue
        return


def _summary(session: SimulationSession, runner: OrderRunner) -> dict[str, object]:
    series = session.series
    p = session.portfolio
    m = session.metrics()
    return {
        "symbol": session.config.symbol,
        "is_authoritative": session.is_authoritative,
        "bars": len(series) if series is not None else 0,
        "first_date": series[0].date.isoformat() if series is not None else None,
        "last_date": series[-1].date.isoformat() if series is not None else None,
        "initial_cash": session.config.initial_cash,
        "cash": p.cash,
        "shares": p.shares,
        "avg_cost": p.avg_cost,
        "total_value": p.total_value,
        "total_return_pct": m.total_return_pct,
        "max_drawdown": m.max_drawdown,
        "up_bar_rate": m.up_bar_rate,
        "buys": m.buys,
        "sells": m.sells,
        "shares_traded": m.shares_traded,
        "rejected_orders": [
            {"index": r.index, "side": r.side, "quantity": r.quantity, "reason": r.reason}
            for r in runner.rejections
        ],
    }


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = _load_config(args.config)

    sim_config = build_simulation_config(args, cfg)
    synthetic = SyntheticConfig(seed=sim_config.seed)
    feed = build_feed(args, cfg, synthetic)
    orders = load_orders(args.orders) if args.orders is not None else []

    session, runner = asyncio.run(
        replay(
            sim_config,
            feed=feed,
            synthetic=synthetic,
            orders=orders,
            scheduler=ManualScheduler() if args.fast else None,
        )
    )
    summary = _summary(session, runner)

    if args.output is None:
        print(json.dumps(summary, indent=2))
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(summary, indent=2) + "\n", encoding="utf-8")

    if args.output_bars is not None:
        args.output_bars.parent.mkdir(parents=True, exist_ok=True)
        with args.output_bars.open("w", newline="") as f:
            w = csv.writer(f)
            w.writerow(
                ["index", "date", "close", "change_pct", "cash", "shares", "equity", "total_value"]
            )
            for r in runner.records:
                w.writerow(
                    [
                        r.index,
                        r.date,
                        r.close,
                        r.change_pct,
                        r.cash,
                        r.shares,
                        r.equity,
                        r.total_value,
                    ]
                )

    if args.output_fills is not None:
        args.output_fills.parent.mkdir(parents=True, exist_ok=True)
        with args.output_fills.open("w", newline="") as f:
            w = csv.writer(f)
            w.writerow(
                ["index", "date", "side", "quantity", "price", "cash_after", "shares_after"]
            )
            for fill in session.fills:
                w.writerow(
                    [
                        fill.cursor,
                        fill.date,
                        fill.side,
                        fill.quantity,
                        fill.price,
                        fill.cash_after,
                        fill.shares_after,
                    ]
                )

    logger.info(
        "replayed %d bars: total value %.2f (%+.2f%%)",
        summary["bars"],
        session.portfolio.total_value,
        session.metrics().total_return_pct,
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
