"""Error types raised by the replay core."""

from __future__ import annotations


class RetroTradeError(Exception):
    """Base error for replay operations."""


class TradeRejected(RetroTradeError, ValueError):
    """A buy/sell command was refused; portfolio state is unchanged."""


class InvalidQuantity(TradeRejected):
    pass


class InsufficientFunds(TradeRejected):
    pass


class InsufficientShares(TradeRejected):
    pass


class NotTradable(TradeRejected):
    """No bar is available to trade against (idle, finished or empty series)."""


class InvalidTransition(RetroTradeError, ValueError):
    """A clock command was issued in a state that does not admit it."""


class DataFeedError(RetroTradeError):
    """A price feed could not produce a usable series."""
