#!/usr/bin/env python3
"""Compute a wallet's portfolio metrics and print them as JSON.

Usage:
    polyfolio portfolio --wallet 0xabc... --scope esports
    polyfolio portfolio --wallet 0xabc... --start 2026-01-01 --end 2026-02-01
    polyfolio portfolio --wallet 0xabc... --pnl-window-only --window-days 7
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Optional

from packages.portfolio.config import PortfolioConfig
from packages.portfolio.errors import ConfigError, InvalidArgument
from packages.portfolio.models import TimeRange
from packages.portfolio.normalization import parse_timestamp
from packages.portfolio.reconciler import build_reconciler
from packages.portfolio.scope import BUILTIN_SCOPES


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute Polymarket portfolio metrics for a wallet.")
    parser.add_argument("--wallet", required=True, help="Proxy wallet address (0x...).")
    parser.add_argument(
        "--scope",
        default="all",
        choices=sorted(BUILTIN_SCOPES),
        help="Market scope (default: all).",
    )
    parser.add_argument(
        "--window-days",
        type=int,
        default=None,
        help="Trailing realized PnL window in days (default: POLYFOLIO_WINDOW_DAYS or 30).",
    )
    parser.add_argument("--start", default=None, help="Only count fills at/after this ISO time.")
    parser.add_argument("--end", default=None, help="Only count fills at/before this ISO time.")
    parser.add_argument(
        "--pnl-window-only",
        action="store_true",
        help="Print only the realized PnL for the trailing window (not with --start/--end).",
    )
    parser.add_argument("--offline", action="store_true", help="Skip all network calls.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    return parser


def _time_range(start: Optional[str], end: Optional[str]) -> Optional[TimeRange]:
    if not start and not end:
        return None
    start_ts = parse_timestamp(start) if start else None
    end_ts = parse_timestamp(end) if end else None
    if start and start_ts is None:
        raise InvalidArgument(f"could not parse --start {start!r}")
    if end and end_ts is None:
        raise InvalidArgument(f"could not parse --end {end!r}")
    if start_ts and end_ts and start_ts > end_ts:
        raise InvalidArgument("--start must not be after --end")
    return TimeRange(start=start_ts, end=end_ts)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.pnl_window_only and (args.start or args.end):
            raise InvalidArgument(
                "--start/--end cannot be combined with --pnl-window-only; use --window-days"
            )
        config = PortfolioConfig.from_env()
        if args.offline:
            config = replace(config, offline=True)
        if args.window_days is not None:
            if args.window_days <= 0:
                raise InvalidArgument("--window-days must be positive")
            config = replace(config, window_days=args.window_days)
        reconciler = build_reconciler(config)

        if args.pnl_window_only:
            pnl = reconciler.compute_realized_pnl_window(
                args.wallet, scope=args.scope, window_days=config.window_days
            )
            payload = {
                "scope": args.scope,
                "window_days": config.window_days,
                "realized_pnl_window": str(pnl),
            }
        else:
            portfolio = reconciler.compute_portfolio(
                args.wallet,
                scope=args.scope,
                time_range=_time_range(args.start, args.end),
            )
            payload = portfolio.to_dict()
    except (InvalidArgument, ConfigError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
