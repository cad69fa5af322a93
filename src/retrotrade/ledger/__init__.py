"""Portfolio ledger: cash, shares and weighted-average cost."""

from .metrics import ReplayMetrics, compute_metrics
from .portfolio import (
    Fill,
    Portfolio,
    buy,
    max_buy_quantity,
    max_sell_quantity,
    open_portfolio,
    revalue,
    sell,
    total_return_pct,
    unrealized_pl,
    unrealized_pl_pct,
)

__all__ = [
    "Fill",
    "Portfolio",
    "ReplayMetrics",
    "buy",
    "compute_metrics",
    "max_buy_quantity",
    "max_sell_quantity",
    "open_portfolio",
    "revalue",
    "sell",
    "total_return_pct",
    "unrealized_pl",
    "unrealized_pl_pct",
]
