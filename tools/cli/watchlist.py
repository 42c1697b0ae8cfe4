#!/usr/bin/env python3
"""Watchlist CLI.

  python -m papertool watchlist --owner alice add AAPL
  python -m papertool watchlist --owner alice remove AAPL
  python -m papertool watchlist --owner alice list
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from packages.papertrade.config import ConfigLoadError, LedgerSettings
from packages.papertrade.ledger.errors import StoreUnavailable
from packages.papertrade.store import SqliteTradeStore
from packages.papertrade.symbols import SymbolDirectory
from packages.papertrade.watchlist import Watchlist, WatchlistError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="papertool watchlist", description="Manage watched symbols.")
    parser.add_argument("--owner", default=os.getenv("PAPERTOOL_OWNER"))
    parser.add_argument("--config", default=None)
    parser.add_argument("--db", default=None)
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="subcommand", required=True)
    add = sub.add_parser("add")
    add.add_argument("symbol")
    rem = sub.add_parser("remove")
    rem.add_argument("symbol")
    sub.add_parser("list")
    return parser


def main(argv: list[str]) -> int:
    """CLI entry point.  Returns exit code (0 = success)."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.owner or not args.owner.strip():
        print("Error: --owner (or PAPERTOOL_OWNER) is required.", file=sys.stderr)
        return 1
    try:
        settings = LedgerSettings.load(args.config)
    except ConfigLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    store = SqliteTradeStore(args.db or settings.db_path)
    # symbols are only format-checked here; the directory needs a network fetch
    watchlist = Watchlist(store, SymbolDirectory())
    try:
        if args.subcommand == "add":
            print(watchlist.add(args.owner, args.symbol))
            return 0
        if args.subcommand == "remove":
            if not watchlist.remove(args.owner, args.symbol):
                print(f"{args.symbol.upper()} is not in your watchlist", file=sys.stderr)
                return 1
            return 0
        for symbol in watchlist.symbols(args.owner):
            print(symbol)
        return 0
    except WatchlistError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except StoreUnavailable as exc:
        print(f"Error: trade store unavailable: {exc}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
