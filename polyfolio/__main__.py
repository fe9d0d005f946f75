"""Module entrypoint for running Polyfolio CLI commands.

Usage: python -m polyfolio <command> [options]
"""

from __future__ import annotations

import sys
from typing import Optional

from tools.cli.portfolio import main as portfolio_main


def print_usage() -> None:
    """Print CLI usage information."""
    print("Polyfolio - Polymarket portfolio reconciliation")
    print("")
    print("Usage: polyfolio <command> [options]")
    print("       python -m polyfolio <command> [options]")
    print("")
    print("Commands:")
    print("  portfolio         Compute a wallet's portfolio metrics as JSON")
    print("")
    print("Options:")
    print("  -h, --help        Show this help message")
    print("  --version         Show version information")
    print("")
    print("Examples:")
    print("  polyfolio portfolio --wallet 0xabc... --scope esports")
    print("  polyfolio portfolio --wallet 0xabc... --pnl-window-only --window-days 7")


def print_version() -> None:
    """Print version information."""
    from polyfolio import __version__
    print(f"polyfolio {__version__}")


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

    if command == "portfolio":
        return portfolio_main(argv[1:])

    print(f"Unknown command: {command}")
    print_usage()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
