from __future__ import annotations

import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timezone


@dataclass(frozen=True, slots=True)
class PriceBar:
    """One daily OHLCV bar."""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self) -> None:
        for name in ("open", "high", "low", "close", "volume"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite")
        if self.volume < 0.0:
            raise ValueError("volume must be non-negative")

    @property
    def change_pct(self) -> float:
        """Open-to-close change of the bar in percent."""
        if self.open == 0.0:
            return 0.0
        return (self.close - self.open) / self.open * 100.0


@dataclass(frozen=True, slots=True)
class PriceSeries:
    """Date-ordered, immutable sequence of daily bars.

    Dates must be unique and strictly increasing.
    """

    bars: tuple[PriceBar, ...]

    def __post_init__(self) -> None:
        for a, b in zip(self.bars[:-1], self.bars[1:], strict=True):
            if b.date <= a.date:
                raise ValueError("bar dates must be strictly increasing")

    @classmethod
    def from_bars(cls, bars: Iterable[PriceBar]) -> PriceSeries:
        return cls(bars=tuple(bars))

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self) -> Iterator[PriceBar]:
        return iter(self.bars)

    def __getitem__(self, index: int) -> PriceBar:
        return self.bars[index]

    @property
    def dates(self) -> list[date]:
        return [b.date for b in self.bars]

    @property
    def close(self) -> list[float]:
        return [b.close for b in self.bars]

    def close_at(self, index: int) -> float:
        return self.bars[index].close

    def window(self, start: int, end: int) -> list[PriceBar]:
        """Bars in the inclusive index range ``[start, end]``."""
        if start > end:
            return []
        return list(self.bars[max(0, start) : end + 1])


def parse_day(value: str) -> date:
    """Parse ``YYYY-MM-DD`` (or an ISO datetime) into a calendar day."""
    s = value.strip()
    if not s:
        raise ValueError("empty date")
    if len(s) == 10:
        return date.fromisoformat(s)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s).date()


def day_from_epoch_seconds(ts: float) -> date:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date()


def epoch_seconds(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())
