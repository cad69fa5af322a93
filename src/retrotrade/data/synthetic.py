"""Seeded synthetic daily series used when no authoritative history is available."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import date, timedelta

from .model import PriceBar, PriceSeries, parse_day

DEFAULT_START = date(2023, 1, 1)


@dataclass(frozen=True, slots=True)
class SyntheticConfig:
    seed: int | None = 0
    trading_days: int = 365
    start_price: float = 150.0
    drift_bias: float = 0.48
    max_daily_change: float = 0.04
    wick_volatility: float = 0.02
    min_volume: int = 500_000
    volume_range: int = 1_000_000

    def __post_init__(self) -> None:
        if self.trading_days <= 0:
            raise ValueError("trading_days must be positive")
        if not math.isfinite(self.start_price) or self.start_price <= 0.0:
            raise ValueError("start_price must be finite and positive")
        if not (0.0 <= self.drift_bias <= 1.0):
            raise ValueError("drift_bias must be in [0, 1]")
        if not math.isfinite(self.max_daily_change) or not (0.0 <= self.max_daily_change < 1.0):
            raise ValueError("max_daily_change must be finite and in [0, 1)")
        if not math.isfinite(self.wick_volatility) or self.wick_volatility < 0.0:
            raise ValueError("wick_volatility must be finite and non-negative")
        if self.min_volume < 0 or self.volume_range < 0:
            raise ValueError("volume bounds must be non-negative")


def coerce_start(value: date | str | None) -> date:
    """Return a usable start day; unparseable input falls back to 2023-01-01."""
    if isinstance(value, date):
        return value
    if value is None:
        return DEFAULT_START
    try:
        return parse_day(value)
    except ValueError:
        return DEFAULT_START


def generate_series(
    start: date | str | None,
    config: SyntheticConfig | None = None,
    *,
    rng: random.Random | None = None,
) -> PriceSeries:
    """Random-walk daily bars on weekdays from ``start``.

    Each day the close moves by ``(u - drift_bias) * max_daily_change`` of the
    previous close; wicks extend beyond the body by up to ``wick_volatility``
    of the price. The same seed always yields the same series.
    """
    cfg = config if config is not None else SyntheticConfig()
    r = rng if rng is not None else random.Random(cfg.seed)

    day = coerce_start(start)
    price = cfg.start_price
    bars: list[PriceBar] = []
    while len(bars) < cfg.trading_days:
        if day.weekday() >= 5:
            day += timedelta(days=1)
            continue

        change = (r.random() - cfg.drift_bias) * cfg.max_daily_change
        wick = price * cfg.wick_volatility

        open_ = price
        close = price * (1.0 + change)
        high = max(open_, close) + r.random() * wick
        low = min(open_, close) - r.random() * wick

        bars.append(
            PriceBar(
                date=day,
                open=round(open_, 2),
                high=round(high, 2),
                low=round(low, 2),
                close=round(close, 2),
                volume=float(math.floor(r.random() * cfg.volume_range) + cfg.min_volume),
            )
        )
        price = close
        day += timedelta(days=1)

    return PriceSeries.from_bars(bars)
