from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import date
from pathlib import Path

from .model import PriceBar, PriceSeries, day_from_epoch_seconds, parse_day

_HEADER = ["date", "open", "high", "low", "close", "volume"]


def _pick_col(fieldnames: list[str], candidates: list[str], *, required: bool) -> str | None:
    lowered = {name.lower(): name for name in fieldnames}
    for c in candidates:
        key = c.lower()
        if key in lowered:
            return lowered[key]
    if required:
        raise ValueError(f"missing required column; tried: {candidates}")
    return None


def _parse_date_cell(cell: str) -> date:
    s = cell.strip()
    if not s:
        raise ValueError("empty date")

    # Numeric cells: seconds or milliseconds since epoch.
    try:
        x = float(s)
    except ValueError:
        return parse_day(s)
    if x > 1e12:
        x /= 1000.0
    return day_from_epoch_seconds(x)


def read_price_bars(path: Path) -> list[PriceBar]:
    """Read daily bars from a CSV in file order.

    Required columns (case-insensitive): date, open, high, low, close
    Optional columns: volume (missing or empty cells read as 0)
    """
    with path.open("r", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ValueError("CSV must have a header row")
        fieldnames = [name for name in reader.fieldnames if name is not None]

        date_col = _pick_col(fieldnames, ["date", "day", "timestamp", "time"], required=True)
        open_col = _pick_col(fieldnames, ["open"], required=True)
        high_col = _pick_col(fieldnames, ["high"], required=True)
        low_col = _pick_col(fieldnames, ["low"], required=True)
        close_col = _pick_col(fieldnames, ["close", "adj close", "adj_close"], required=True)
        vol_col = _pick_col(fieldnames, ["volume", "vol"], required=False)

        bars: list[PriceBar] = []
        for row in reader:
            volume = 0.0
            if vol_col is not None:
                cell = (row.get(vol_col) or "").strip()
                volume = float(cell) if cell else 0.0
            bars.append(
                PriceBar(
                    date=_parse_date_cell(row[date_col]),
                    open=float(row[open_col]),
                    high=float(row[high_col]),
                    low=float(row[low_col]),
                    close=float(row[close_col]),
                    volume=volume,
                )
            )
        return bars


def load_price_csv(path: Path) -> PriceSeries:
    """Load a CSV whose rows are already in strictly increasing date order."""
    return PriceSeries.from_bars(read_price_bars(path))


def write_price_csv(path: Path, bars: Iterable[PriceBar]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(_HEADER)
        for bar in bars:
            writer.writerow(
                [bar.date.isoformat(), bar.open, bar.high, bar.low, bar.close, bar.volume]
            )
            n += 1
    return n
