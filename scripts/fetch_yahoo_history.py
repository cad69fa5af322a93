#!/usr/bin/env python3
from __future__ import annotations

import argparse
from pathlib import Path

from retrotrade.data.io_csv import write_price_csv
from retrotrade.data.model import parse_day
from retrotrade.data.yahoo_history import DEFAULT_BASE_URL, YahooFeedConfig, fetch_daily_bars


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Fetch Yahoo Finance daily bars into a CSV.")
    p.add_argument("--symbol", required=True, help="Ticker symbol, e.g. AAPL")
    p.add_argument("--start", required=True, help="First day to keep (YYYY-MM-DD)")
    p.add_argument("--range", dest="chart_range", default="5y", help="Chart range, e.g. 5y")
    p.add_argument("--base-url", default=DEFAULT_BASE_URL, help="Chart API base URL")
    p.add_argument(
        "--proxy-template",
        default=None,
        help="Optional proxy URL template containing '{url}'",
    )
    p.add_argument("--timeout-s", type=float, default=15.0)
    p.add_argument("--output", type=Path, required=True, help="Output CSV path")
    p.add_argument(
        "--debug",
        action="store_true",
        help="Print the resolved date range of the fetched bars",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    start = parse_day(args.start)
    config = YahooFeedConfig(
        base_url=args.base_url,
        chart_range=args.chart_range,
        timeout_s=args.timeout_s,
        proxy_template=args.proxy_template,
    )

    series = fetch_daily_bars(args.symbol, start, config)
    if args.debug:
        print(f"[debug] symbol={args.symbol.upper()} range={args.chart_range}")
        print(f"[debug] first={series[0].date.isoformat()} last={series[-1].date.isoformat()}")

    n = write_price_csv(args.output, series)
    print(f"wrote {n} rows to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
