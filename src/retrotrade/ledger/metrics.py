from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from .portfolio import Fill


@dataclass(frozen=True, slots=True)
class ReplayMetrics:
    total_return_pct: float
    max_drawdown: float
    up_bar_rate: float
    buys: int
    sells: int
    shares_traded: int


def _max_drawdown(values: Sequence[float]) -> float:
    peak = -math.inf
    max_dd = 0.0
    for x in values:
        if x > peak:
            peak = x
        if peak > 0:
            dd = 1.0 - (x / peak)
            if dd > max_dd:
                max_dd = dd
    return max_dd


def compute_metrics(
    *, equity_curve: Sequence[float], initial_cash: float, fills: Sequence[Fill]
) -> ReplayMetrics:
    """Summarize a replay from its per-bar total values and fill journal."""
    buys = sum(1 for f in fills if f.side == "buy")
    sells = len(fills) - buys
    traded = sum(f.quantity for f in fills)
    if not equity_curve or initial_cash <= 0.0:
        return ReplayMetrics(
            total_return_pct=0.0,
            max_drawdown=0.0,
            up_bar_rate=0.0,
            buys=buys,
            sells=sells,
            shares_traded=traded,
        )

    ups = 0
    for a, b in zip(equity_curve[:-1], equity_curve[1:], strict=True):
        if b > a:
            ups += 1
    steps = len(equity_curve) - 1

    return ReplayMetrics(
        total_return_pct=(equity_curve[-1] - initial_cash) / initial_cash * 100.0,
        max_drawdown=_max_drawdown([initial_cash, *equity_curve]),
        up_bar_rate=(ups / steps) if steps > 0 else 0.0,
        buys=buys,
        sells=sells,
        shares_traded=traded,
    )
