from __future__ import annotations

import math
from dataclasses import dataclass, replace
from numbers import Integral
from typing import Literal

from retrotrade.errors import InsufficientFunds, InsufficientShares, InvalidQuantity


@dataclass(frozen=True, slots=True)
class Portfolio:
    """Single-symbol long-only book valued at a reference price.

    ``total_value == cash + equity`` holds after every update. ``avg_cost`` is
    the weighted average purchase price of the open position and reads 0
    while flat.
    """

    cash: float
    shares: int
    avg_cost: float
    equity: float
    total_value: float

    @property
    def cost_basis(self) -> float:
        return self.shares * self.avg_cost

    @property
    def is_flat(self) -> bool:
        return self.shares == 0


@dataclass(frozen=True, slots=True)
class Fill:
    cursor: int
    date: str
    side: Literal["buy", "sell"]
    quantity: int
    price: float
    cash_after: float
    shares_after: int


def open_portfolio(initial_cash: float) -> Portfolio:
    if not math.isfinite(initial_cash) or initial_cash <= 0.0:
        raise ValueError("initial_cash must be finite and positive")
    cash = float(initial_cash)
    return Portfolio(cash=cash, shares=0, avg_cost=0.0, equity=0.0, total_value=cash)


def _check_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, Integral):
        raise InvalidQuantity(f"quantity must be a positive integer, got {quantity!r}")
    q = int(quantity)
    if q <= 0:
        raise InvalidQuantity(f"quantity must be a positive integer, got {q}")
    return q


def _check_price(price: float) -> float:
    if not math.isfinite(price) or price <= 0.0:
        raise ValueError("price must be finite and positive")
    return float(price)


def revalue(portfolio: Portfolio, price: float) -> Portfolio:
    """Mark the position to ``price``."""
    equity = portfolio.shares * price
    return replace(portfolio, equity=equity, total_value=portfolio.cash + equity)


def buy(portfolio: Portfolio, quantity: int, price: float) -> Portfolio:
    q = _check_quantity(quantity)
    px = _check_price(price)
    cost = q * px
    if cost > portfolio.cash:
        raise InsufficientFunds(
            f"buying {q} @ {px:.2f} costs {cost:.2f}; only {portfolio.cash:.2f} cash available"
        )

    shares = portfolio.shares + q
    avg_cost = (portfolio.shares * portfolio.avg_cost + cost) / shares
    nxt = replace(portfolio, cash=portfolio.cash - cost, shares=shares, avg_cost=avg_cost)
    return revalue(nxt, px)


def sell(portfolio: Portfolio, quantity: int, price: float) -> Portfolio:
    q = _check_quantity(quantity)
    px = _check_price(price)
    if q > portfolio.shares:
        raise InsufficientShares(f"cannot sell {q} shares; holding {portfolio.shares}")

    # Average cost of the surviving position is unchanged by a sale.
    nxt = replace(portfolio, cash=portfolio.cash + q * px, shares=portfolio.shares - q)
    return revalue(nxt, px)


def unrealized_pl(portfolio: Portfolio) -> float:
    return portfolio.equity - portfolio.cost_basis


def unrealized_pl_pct(portfolio: Portfolio) -> float:
    basis = portfolio.cost_basis
    if basis <= 0.0:
        return 0.0
    return unrealized_pl(portfolio) / basis * 100.0


def total_return_pct(portfolio: Portfolio, initial_cash: float) -> float:
    if initial_cash <= 0.0:
        return 0.0
    return (portfolio.total_value - initial_cash) / initial_cash * 100.0


def max_buy_quantity(portfolio: Portfolio, price: float) -> int:
    """Largest whole number of shares the available cash can buy at ``price``."""
    if not math.isfinite(price) or price <= 0.0:
        return 0
    return int(math.floor(portfolio.cash / price))


def max_sell_quantity(portfolio: Portfolio) -> int:
    return portfolio.shares
