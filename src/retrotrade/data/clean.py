from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from .model import PriceBar, PriceSeries


@dataclass(frozen=True, slots=True)
class CleanStats:
    deduped: int
    sorted: bool
    dropped: int


def normalize_and_sort(bars: Iterable[PriceBar]) -> tuple[PriceSeries, CleanStats]:
    """Sort bars ascending by date and de-duplicate dates by keeping the last row."""
    rows = list(bars)
    if not rows:
        return PriceSeries(bars=()), CleanStats(deduped=0, sorted=True, dropped=0)

    was_sorted = all(rows[i].date <= rows[i + 1].date for i in range(len(rows) - 1))
    # sort() is stable, so "last occurrence" keeps input order among equal dates.
    order = sorted(range(len(rows)), key=lambda i: rows[i].date)

    deduped = 0
    keep: list[PriceBar] = []
    last_day: date | None = None
    for idx in order:
        bar = rows[idx]
        if last_day is not None and bar.date == last_day:
            deduped += 1
            keep[-1] = bar
        else:
            keep.append(bar)
            last_day = bar.date

    return PriceSeries.from_bars(keep), CleanStats(deduped=deduped, sorted=was_sorted, dropped=0)


def trim_before(series: PriceSeries, start: date) -> tuple[PriceSeries, CleanStats]:
    """Drop bars dated before ``start``."""
    kept = [b for b in series if b.date >= start]
    return PriceSeries.from_bars(kept), CleanStats(
        deduped=0, sorted=True, dropped=len(series) - len(kept)
    )
