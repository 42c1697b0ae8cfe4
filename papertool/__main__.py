"""Module entrypoint for running Papertool CLI commands.

Usage: python -m papertool <command> [options]
"""

from __future__ import annotations

import sys
from typing import Optional

from tools.cli.ledger import main as ledger_main
from tools.cli.watchlist import main as watchlist_main


def print_usage() -> None:
    """Print CLI usage information."""
    print("Papertool - paper-trading ledger")
    print("")
    print("Usage: papertool <command> [options]")
    print("       python -m papertool <command> [options]")
    print("")
    print("Commands:")
    print("  ledger     Submit/revoke trades, show history, portfolio, cash and quotes")
    print("  watchlist  Add, remove or list watched symbols")
    print("")
    print("Options:")
    print("  -h, --help        Show this help message")
    print("  --version         Show version information")
    print("")
    print("Examples:")
    print("  papertool ledger --owner alice buy AAPL 10")
    print("  papertool ledger --owner alice portfolio --quote AAPL=190")
    print("  papertool watchlist --owner alice add MSFT")


def print_version() -> None:
    """Print version information."""
    from papertool import __version__
    print(f"papertool {__version__}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entrypoint."""
    if argv is None:
        argv = sys.argv[1:]

    if len(argv) < 1:
        print_usage()
        return 1

    command = argv[0]

    if command in ("-h", "--help"):
        print_usage()
        return 0

    if command in ("-v", "--version"):
        print_version()
        return 0

    if command == "ledger":
        return ledger_main(argv[1:])
    if command == "watchlist":
        return watchlist_main(argv[1:])

    print(f"Unknown command: {command}", file=sys.stderr)
    print("Run 'papertool --help' for usage.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
