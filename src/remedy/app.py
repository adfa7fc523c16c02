# =============================================================================
# Remedy Command Line
# =============================================================================
# Entry point for the `remedy` command and `python -m remedy`.
#
# The app:
#   - Parses command-line arguments
#   - Loads configuration
#   - Sets up logging
#   - Runs one full sync of the selected accounts and prints a summary
#
# Exit codes:
#   0  every account and mailbox synced
#   1  at least one account or mailbox failed
#   2  configuration or usage error
# =============================================================================

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from remedy import __app_name__, __version__
from remedy.config import Config, ConfigError, print_paths
from remedy.imap.sync import SyncEngine, SyncReport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_CONFIG_ERROR = 2

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Remedy: synchronize IMAP mailboxes into local Maildirs",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--init",
        action="store_true",
        help="Write an example config file and exit",
    )

    parser.add_argument(
        "--account",
        action="append",
        dest="accounts",
        metavar="NAME",
        help="Only sync this account (repeatable)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger for console output."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
    )


def write_example_config(path: Path | None) -> int:
    """Write a starter config file unless one already exists."""
    target = path or Config.config_file_path()
    if target.exists():
        print(f"Config file already exists: {target}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    written = Config.example().save(target)
    print(f"Example config written to {written}")
    return EXIT_OK


def print_report(report: SyncReport) -> None:
    """Print a per-account summary and every failure."""
    for account in report.accounts:
        status = "ok" if account.success else "FAILED"
        print(
            f"{account.account}: {status} - {account.stored} messages stored "
            f"in {len(account.mailboxes)} mailboxes"
        )
    if report.failures:
        print(f"\n{len(report.failures)} failure(s):", file=sys.stderr)
        for failure in report.failures:
            print(f"  - {failure}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Remedy.

    This function:
        1. Parses command-line arguments
        2. Handles special commands (--paths, --init, --version)
        3. Loads configuration and sets up logging
        4. Syncs the selected accounts

    Returns:
        Exit code (see module header).
    """
    args = parse_args(argv)

    if args.paths:
        print_paths()
        return EXIT_OK

    if args.init:
        return write_example_config(args.config)

    try:
        config = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging("debug" if args.debug else config.general.log_level)

    accounts = list(config.accounts.values())
    if args.accounts:
        unknown = [name for name in args.accounts if name not in config.accounts]
        if unknown:
            print(f"Unknown account(s): {', '.join(unknown)}", file=sys.stderr)
            return EXIT_CONFIG_ERROR
        accounts = [config.accounts[name] for name in args.accounts]

    if not accounts:
        print("No accounts configured", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.debug(f"Syncing accounts: {accounts}")
    report = asyncio.run(SyncEngine().sync_accounts(accounts))
    print_report(report)

    return EXIT_OK if report.success else EXIT_SYNC_FAILED


if __name__ == "__main__":
    sys.exit(main())
