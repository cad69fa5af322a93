from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date
from http.client import HTTPException
from typing import Any
from urllib import error, parse, request

from retrotrade.errors import DataFeedError

from .clean import normalize_and_sort
from .model import PriceBar, PriceSeries, day_from_epoch_seconds

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://query1.finance.yahoo.com"


@dataclass(frozen=True, slots=True)
class YahooFeedConfig:
    base_url: str = DEFAULT_BASE_URL
    chart_range: str = "5y"
    timeout_s: float = 15.0
    # Optional wrapper such as "https://api.allorigins.win/raw?url={url}".
    proxy_template: str | None = None

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be non-empty")
        if not math.isfinite(self.timeout_s) or self.timeout_s <= 0.0:
            raise ValueError("timeout_s must be finite and positive")
        if self.proxy_template is not None and "{url}" not in self.proxy_template:
            raise ValueError("proxy_template must contain '{url}'")


def chart_url(symbol: str, config: YahooFeedConfig) -> str:
    s = symbol.strip().upper()
    if not s:
        raise ValueError("symbol is empty")
    url = (
        f"{config.base_url.rstrip('/')}/v8/finance/chart/{parse.quote(s)}"
        f"?interval=1d&range={config.chart_range}"
    )
    if config.proxy_template is not None:
        return config.proxy_template.format(url=parse.quote(url, safe=""))
    return url


def _http_get_json(url: str, timeout_s: float) -> Any:
    req = request.Request(url, headers={"User-Agent": "retrotrade/0.1"}, method="GET")
    with request.urlopen(req, timeout=timeout_s) as resp:
        raw = resp.read().decode("utf-8")
    return json.loads(raw)


def _as_price(raw: Any) -> float | None:
    if raw is None:
        return None
    val = float(raw)
    if not math.isfinite(val):
        return None
    return round(val, 2)


def parse_chart_payload(payload: Any, *, start: date) -> PriceSeries:
    """Convert a chart API response into a daily series starting at ``start``.

    Rows before ``start`` and rows with a null open or close are skipped.
    Prices are rounded to cents; a null volume reads as 0.
    """
    if not isinstance(payload, dict):
        raise DataFeedError(f"unexpected chart response type: {type(payload)}")
    chart = payload.get("chart")
    if not isinstance(chart, dict):
        raise DataFeedError("chart response has no 'chart' object")
    results = chart.get("result")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise DataFeedError(f"chart error: {chart.get('error')}")
    result = results[0]

    timestamps = result.get("timestamp")
    indicators = result.get("indicators")
    quotes = indicators.get("quote") if isinstance(indicators, dict) else None
    quote = quotes[0] if isinstance(quotes, list) and quotes else None
    if not isinstance(timestamps, list) or not isinstance(quote, dict) or not quote.get("open"):
        raise DataFeedError("chart response is missing timestamps or quotes")

    opens = quote.get("open") or []
    highs = quote.get("high") or []
    lows = quote.get("low") or []
    closes = quote.get("close") or []
    volumes = quote.get("volume") or []

    bars: list[PriceBar] = []
    for i, ts in enumerate(timestamps):
        if ts is None:
            continue
        day = day_from_epoch_seconds(float(ts))
        if day < start:
            continue
        o = _as_price(opens[i] if i < len(opens) else None)
        c = _as_price(closes[i] if i < len(closes) else None)
        if o is None or c is None:
            continue
        h = _as_price(highs[i] if i < len(highs) else None)
        low_value = _as_price(lows[i] if i < len(lows) else None)
        vol_raw = volumes[i] if i < len(volumes) else None
        bars.append(
            PriceBar(
                date=day,
                open=o,
                high=h if h is not None else max(o, c),
                low=low_value if low_value is not None else min(o, c),
                close=c,
                volume=float(vol_raw) if vol_raw else 0.0,
            )
        )

    series, stats = normalize_and_sort(bars)
    if stats.deduped:
        logger.debug("dropped %d duplicate chart rows", stats.deduped)
    if len(series) == 0:
        raise DataFeedError("chart response contains no bars on or after the start date")
    return series


def fetch_daily_bars(
    symbol: str, start: date, config: YahooFeedConfig | None = None
) -> PriceSeries:
    """Fetch daily bars for ``symbol`` from the Yahoo Finance chart API (single attempt)."""
    cfg = config if config is not None else YahooFeedConfig()
    url = chart_url(symbol, cfg)
    logger.info("fetching %s daily bars from %s", symbol, cfg.base_url)
    try:
        payload = _http_get_json(url, cfg.timeout_s)
    except (error.URLError, TimeoutError, OSError, HTTPException) as exc:
        raise DataFeedError(f"chart request failed: {exc}") from exc
    except ValueError as exc:
        raise DataFeedError(f"chart response is not JSON: {exc}") from exc
    try:
        return parse_chart_payload(payload, start=start)
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise DataFeedError(f"unable to parse chart response: {exc}") from exc
