#!/usr/bin/env python3
"""Ledger CLI: submit and revoke paper trades, inspect the replayed portfolio.

Commands
--------
  python -m papertool ledger --owner alice buy  AAPL 10 [--price 187.50]
  python -m papertool ledger --owner alice sell AAPL 4
  python -m papertool ledger --owner alice revoke <TRADE_ID>
  python -m papertool ledger --owner alice history [--json]
  python -m papertool ledger --owner alice portfolio [--quote AAPL=190] [--offline] [--json]
  python -m papertool ledger --owner alice cash
  python -m papertool ledger --owner alice quote AAPL [--history 30] [--quote AAPL=190] [--json]

Exit codes: 0 success, 1 usage/config error, 2 trade rejected.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

from packages.papertrade.config import ConfigLoadError, LedgerSettings
from packages.papertrade.ledger.errors import DataIntegrityViolation, StoreUnavailable, ValidationError
from packages.papertrade.ledger.mark import format_money, quantize_money
from packages.papertrade.ledger.records import Side, normalize_symbol, parse_quote
from packages.papertrade.ledger.service import MutationResult
from packages.papertrade.quotes import StaticQuoteSource
from packages.papertrade.runtime import Runtime, build_runtime
from packages.papertrade.symbols import SymbolDirectory

logger = logging.getLogger(__name__)

EXIT_REJECTED = 2


# ---------------------------------------------------------------------------
# Runtime setup
# ---------------------------------------------------------------------------


def _parse_quote_args(raw_quotes: Optional[list[str]]) -> dict[str, Any]:
    """``["AAPL=190.5", ...]`` -> ``{"AAPL": Decimal("190.5")}``."""
    quotes: dict[str, Any] = {}
    for item in raw_quotes or []:
        symbol, sep, price = item.partition("=")
        if not sep:
            raise ValueError(f"--quote expects SYMBOL=PRICE, got {item!r}")
        quotes[normalize_symbol(symbol)] = parse_quote(price)
    return quotes


def _load_runtime(args: argparse.Namespace) -> Runtime:
    settings = LedgerSettings.load(args.config)
    if args.db:
        settings = settings.with_overrides({"db_path": args.db})

    static_quotes = _parse_quote_args(getattr(args, "quote", None))
    if static_quotes or args.offline:
        return build_runtime(
            settings,
            quote_source=StaticQuoteSource(static_quotes),
            directory=SymbolDirectory(),
            offline=True,
        )
    return build_runtime(settings)


def _print_rejection(prefix: str, result: MutationResult) -> int:
    rejection = result.rejection
    print(f"[{prefix}] rejected ({rejection.reason}): {rejection.message}", file=sys.stderr)
    for key, value in rejection.details.items():
        print(f"[{prefix}]   {key}: {value}", file=sys.stderr)
    return EXIT_REJECTED


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------


def _submit(args: argparse.Namespace, rt: Runtime, side: str) -> int:
    prefix = f"ledger {side.lower()}"
    result = rt.service.submit_trade(args.owner, args.symbol, side, args.quantity, args.price)
    if not result.ok:
        return _print_rejection(prefix, result)

    trade = result.trade
    cur = rt.settings.currency_symbol
    print(
        f"{trade.side} {trade.quantity} {trade.symbol} @ {format_money(trade.price, cur)} "
        f"(trade {trade.trade_id})"
    )
    if result.snapshot is not None:
        print(f"cash: {format_money(result.snapshot.cash, cur)}")
    else:
        print(f"[{prefix}] trade saved; portfolio will be recomputed on next read", file=sys.stderr)
    return 0


def _revoke(args: argparse.Namespace, rt: Runtime) -> int:
    result = rt.service.revoke_trade(args.owner, args.trade_id)
    if not result.ok:
        return _print_rejection("ledger revoke", result)
    print(f"revoked trade {args.trade_id}")
    if result.snapshot is not None:
        print(f"cash: {format_money(result.snapshot.cash, rt.settings.currency_symbol)}")
    return 0


def _history(args: argparse.Namespace, rt: Runtime) -> int:
    trades = rt.service.history(args.owner)
    if args.json:
        print(json.dumps([t.to_dict() for t in trades], indent=2))
        return 0
    if not trades:
        print("no trades")
        return 0
    cur = rt.settings.currency_symbol
    for t in trades:
        print(
            f"{t.executed_at.strftime('%Y-%m-%d %H:%M:%S')}  {t.side:<4}  {t.symbol:<8} "
            f"{t.quantity:>8}  {format_money(t.price, cur):>12}  {t.trade_id}"
        )
    return 0


def _portfolio(args: argparse.Namespace, rt: Runtime) -> int:
    snap, valuation = rt.valuation(args.owner)
    if args.json:
        print(json.dumps({"snapshot": snap.to_dict(), "valuation": valuation.to_dict()}, indent=2))
        return 0

    cur = rt.settings.currency_symbol
    print(f"cash            : {format_money(valuation.cash, cur)}")
    print(f"holdings value  : {format_money(valuation.holdings_value, cur)}")
    print(f"total value     : {format_money(valuation.total_value, cur)}")
    print(f"realized P&L    : {format_money(valuation.total_realized_pnl, cur)}")
    print(f"unrealized P&L  : {format_money(valuation.total_unrealized_pnl, cur)}")
    change_pct = valuation.change_pct
    pct = f" ({quantize_money(change_pct)}%)" if change_pct is not None else ""
    print(f"change vs start : {format_money(valuation.change, cur)}{pct}")

    if valuation.holdings:
        print("")
        print(f"{'symbol':<8} {'qty':>8} {'avg cost':>12} {'price':>12} {'unrealized':>12}")
        for h in valuation.holdings:
            print(
                f"{h.symbol:<8} {h.net_quantity:>8} "
                f"{format_money(h.average_cost_basis, cur):>12} "
                f"{format_money(h.quote_price, cur):>12} "
                f"{(format_money(h.unrealized_pnl, cur) if h.price_available else 'N/A'):>12}"
            )
    if valuation.unavailable_symbols:
        print(
            f"\nprice unavailable: {', '.join(valuation.unavailable_symbols)} "
            "(excluded from holdings value and unrealized P&L)"
        )
    return 0


def _quote(args: argparse.Namespace, rt: Runtime) -> int:
    try:
        symbol = normalize_symbol(args.symbol)
    except ValidationError as exc:
        print(f"[ledger quote] {exc.message}", file=sys.stderr)
        return 1
    if args.history < 0:
        print("[ledger quote] --history must not be negative", file=sys.stderr)
        return 1
    profile = rt.profile(symbol)
    price = rt.quote_source.get_price(symbol)
    since = date.today() - timedelta(days=args.history) if args.history else None
    closes = rt.daily_closes(symbol, since=since) if args.history else []

    if args.json:
        print(json.dumps({
            "symbol": symbol,
            "profile": profile,
            "quote": str(price) if price is not None else None,
            "closes": [c.to_dict() for c in closes],
        }, indent=2))
        return 0

    cur = rt.settings.currency_symbol
    if profile is None:
        print(f"{symbol}  (company profile unavailable)")
    else:
        print(f"{symbol}  {profile.get('name') or ''}".rstrip())
        for key in ("exchange", "industry", "country"):
            if profile.get(key):
                print(f"{key:<11}: {profile[key]}")
        if profile.get("market_cap_millions"):
            cap = Decimal(profile["market_cap_millions"])
            print(f"{'market cap':<11}: {format_money(cap, cur)}M")
    print(f"{'price':<11}: {format_money(price, cur)}")

    if args.history:
        if rt.history is None:
            print("\ndaily history unavailable (no Alpha Vantage key, or --offline)")
        elif not closes:
            print(f"\nno closes in the last {args.history} days")
        else:
            print("")
            for c in closes:
                print(f"{c.day.isoformat()}  {format_money(c.close, cur):>12}")
    return 0


def _cash(args: argparse.Namespace, rt: Runtime) -> int:
    print(format_money(rt.service.cached_cash(args.owner), rt.settings.currency_symbol))
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="papertool ledger",
        description="Paper-trading ledger: market fills replayed into cash, positions and P&L.",
    )
    parser.add_argument(
        "--owner",
        default=os.getenv("PAPERTOOL_OWNER"),
        help="Ledger owner id (default: $PAPERTOOL_OWNER).",
    )
    parser.add_argument("--config", default=None, help="JSON settings file.")
    parser.add_argument("--db", default=None, help="SQLite database path (overrides settings).")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not contact the market-data provider; only --quote prices are known.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )

    sub = parser.add_subparsers(dest="subcommand", required=True)

    for name in ("buy", "sell"):
        p = sub.add_parser(name, help=f"{name.capitalize()} shares at market.")
        p.add_argument("symbol")
        p.add_argument("quantity")
        p.add_argument("--price", default=None, help="Fill price (default: current quote).")
        p.add_argument("--quote", action="append", metavar="SYMBOL=PRICE")

    rev = sub.add_parser("revoke", help="Delete a trade and replay the ledger.")
    rev.add_argument("trade_id")

    hist = sub.add_parser("history", help="List trades, newest first.")
    hist.add_argument("--json", action="store_true")

    port = sub.add_parser("portfolio", help="Show the portfolio marked to market.")
    port.add_argument("--quote", action="append", metavar="SYMBOL=PRICE")
    port.add_argument("--json", action="store_true")

    sub.add_parser("cash", help="Show available cash.")

    quote = sub.add_parser("quote", help="Show a symbol's company profile, price and daily closes.")
    quote.add_argument("symbol")
    quote.add_argument("--quote", action="append", metavar="SYMBOL=PRICE")
    quote.add_argument(
        "--history",
        type=int,
        default=0,
        metavar="DAYS",
        help="Also list daily closes for the last DAYS days.",
    )
    quote.add_argument("--json", action="store_true")
    return parser


def main(argv: list[str]) -> int:
    """CLI entry point.  Returns exit code (0 = success)."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.owner or not args.owner.strip():
        print("Error: --owner (or PAPERTOOL_OWNER) is required.", file=sys.stderr)
        return 1

    try:
        rt = _load_runtime(args)
    except (ConfigLoadError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        if args.subcommand == "buy":
            return _submit(args, rt, Side.BUY)
        if args.subcommand == "sell":
            return _submit(args, rt, Side.SELL)
        if args.subcommand == "revoke":
            return _revoke(args, rt)
        if args.subcommand == "history":
            return _history(args, rt)
        if args.subcommand == "portfolio":
            return _portfolio(args, rt)
        if args.subcommand == "quote":
            return _quote(args, rt)
        if args.subcommand == "cash":
            return _cash(args, rt)
    except StoreUnavailable as exc:
        print(f"Error: trade store unavailable: {exc}", file=sys.stderr)
        return 1
    except DataIntegrityViolation as exc:
        print(f"Error: ledger data is corrupt: {exc}", file=sys.stderr)
        return 1
    finally:
        rt.store.close()

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
