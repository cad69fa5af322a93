from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from retrotrade.errors import DataFeedError

from .clean import normalize_and_sort, trim_before
from .io_csv import read_price_bars
from .model import PriceSeries
from .synthetic import SyntheticConfig, generate_series
from .yahoo_history import YahooFeedConfig, fetch_daily_bars

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FeedResult:
    series: PriceSeries
    is_authoritative: bool


class DataFeed(ABC):
    @abstractmethod
    def fetch(self, symbol: str, start: date) -> FeedResult:
        """Return a non-empty ascending series with every bar on/after ``start``.

        Raises ``DataFeedError`` when no usable series can be produced.
        """
        raise NotImplementedError


class YahooChartFeed(DataFeed):
    def __init__(self, config: YahooFeedConfig | None = None) -> None:
        self._config = config if config is not None else YahooFeedConfig()

    def fetch(self, symbol: str, start: date) -> FeedResult:
        series = fetch_daily_bars(symbol, start, self._config)
        return FeedResult(series=series, is_authoritative=True)


class CsvFeed(DataFeed):
    """Daily bars from a local CSV file; the symbol is informational only."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def fetch(self, symbol: str, start: date) -> FeedResult:
        try:
            bars = read_price_bars(self._path)
        except (OSError, ValueError, KeyError, TypeError, csv.Error) as exc:
            raise DataFeedError(f"unable to read {self._path}: {exc}") from exc
        series, stats = normalize_and_sort(bars)
        series, trimmed = trim_before(series, start)
        if stats.deduped or not stats.sorted:
            logger.info(
                "normalized %s for %s: sorted=%s deduped=%d",
                self._path,
                symbol,
                stats.sorted,
                stats.deduped,
            )
        if len(series) == 0:
            raise DataFeedError(f"{self._path} has no bars on or after {start.isoformat()}")
        logger.debug(
            "loaded %d bars from %s (%d before start)", len(series), self._path, trimmed.dropped
        )
        return FeedResult(series=series, is_authoritative=True)


class SyntheticFeed(DataFeed):
    def __init__(self, config: SyntheticConfig | None = None) -> None:
        self._config = config if config is not None else SyntheticConfig()

    def fetch(self, symbol: str, start: date) -> FeedResult:
        return FeedResult(series=generate_series(start, self._config), is_authoritative=False)


def fetch_with_fallback(
    feed: DataFeed,
    symbol: str,
    start: date,
    *,
    synthetic: SyntheticConfig | None = None,
) -> FeedResult:
    """One attempt against ``feed``; any failure degrades to a synthetic series."""
    try:
        result = feed.fetch(symbol, start)
        if len(result.series) == 0:
            raise DataFeedError("feed returned an empty series")
        return result
    except Exception as exc:
        logger.warning(
            "data feed failed for %s (%s); using synthetic series", symbol, exc, exc_info=True
        )
    return SyntheticFeed(synthetic).fetch(symbol, start)
