"""Scripted orders for headless replays.

An order script is a JSON list (or an object with an ``orders`` list) of
``{"at": <YYYY-MM-DD or bar index>, "side": "buy"|"sell", "quantity": n}``.
Quantities may also be ``"max"`` to buy with all cash or sell the whole
position.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Literal, cast

from retrotrade.data.model import PriceSeries, parse_day

logger = logging.getLogger(__name__)

MAX_QUANTITY = "max"


@dataclass(frozen=True, slots=True)
class ScriptedOrder:
    at: date | int
    side: Literal["buy", "sell"]
    quantity: int | Literal["max"]

    def __post_init__(self) -> None:
        if self.side not in ("buy", "sell"):
            raise ValueError(f"side must be 'buy' or 'sell', got {self.side!r}")
        if isinstance(self.at, int) and self.at < 0:
            raise ValueError("bar index must be non-negative")


def _parse_at(raw: object) -> date | int:
    if isinstance(raw, bool):
        raise ValueError(f"invalid order position: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        s = raw.strip()
        if s.isdigit():
            return int(s)
        return parse_day(s)
    raise ValueError(f"invalid order position: {raw!r}")


def _parse_quantity(raw: object) -> int | Literal["max"]:
    if raw == MAX_QUANTITY:
        return MAX_QUANTITY
    # Non-positive values are kept; the ledger rejects them at execution time.
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    raise ValueError(f"quantity must be an integer or 'max', got {raw!r}")


def parse_orders(payload: Any) -> list[ScriptedOrder]:
    if isinstance(payload, dict):
        payload = payload.get("orders", [])
    if not isinstance(payload, list):
        raise ValueError("order script must be a JSON list or an object with 'orders'")

    orders: list[ScriptedOrder] = []
    for i, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValueError(f"order #{i} must be an object")
        row = cast(dict[str, Any], item)
        orders.append(
            ScriptedOrder(
                at=_parse_at(row.get("at")),
                side=cast(Literal["buy", "sell"], str(row.get("side", "")).lower()),
                quantity=_parse_quantity(row.get("quantity")),
            )
        )
    return orders


def load_orders(path: Path) -> list[ScriptedOrder]:
    return parse_orders(json.loads(path.read_text(encoding="utf-8")))


def schedule_orders(
    orders: list[ScriptedOrder], series: PriceSeries
) -> dict[int, list[ScriptedOrder]]:
    """Map each order to the bar index it executes on.

    A date that is not a trading day executes on the next bar after it.
    Orders that fall outside the series are dropped with a warning.
    """
    dates = series.dates
    out: dict[int, list[ScriptedOrder]] = {}
    for order in orders:
        if isinstance(order.at, int):
            index: int | None = order.at if order.at < len(series) else None
        else:
            index = next((i for i, d in enumerate(dates) if d >= order.at), None)
        if index is None:
            logger.warning(
                "order %s %s at %s is outside the series", order.side, order.quantity, order.at
            )
            continue
        out.setdefault(index, []).append(order)
    return out
