"""Data layer: daily price series, feeds and loaders."""

from .clean import CleanStats, normalize_and_sort, trim_before
from .feed import CsvFeed, DataFeed, FeedResult, SyntheticFeed, YahooChartFeed, fetch_with_fallback
from .io_csv import load_price_csv, read_price_bars, write_price_csv
from .model import PriceBar, PriceSeries, parse_day
from .synthetic import SyntheticConfig, generate_series
from .yahoo_history import YahooFeedConfig, fetch_daily_bars, parse_chart_payload

__all__ = [
    "CleanStats",
    "CsvFeed",
    "DataFeed",
    "FeedResult",
    "PriceBar",
    "PriceSeries",
    "SyntheticConfig",
    "SyntheticFeed",
    "YahooChartFeed",
    "YahooFeedConfig",
    "fetch_daily_bars",
    "fetch_with_fallback",
    "generate_series",
    "load_price_csv",
    "normalize_and_sort",
    "parse_chart_payload",
    "parse_day",
    "read_price_bars",
    "trim_before",
    "write_price_csv",
]
