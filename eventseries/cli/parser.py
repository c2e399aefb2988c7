"""Command-line argument parsing for EventSeries.

This module handles all command-line argument parsing functionality,
including the subcommands and the shared logging options.
"""

import argparse
import logging
from datetime import date, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_LEVEL_CHOICES = ["DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_date(date_str: str) -> date:
    """Parse a date string in YYYY-MM-DD format for command-line arguments.

    Raises:
        argparse.ArgumentTypeError: If the format is invalid
    """
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError as err:
        raise argparse.ArgumentTypeError(
            f"Invalid date format: {date_str}. Use YYYY-MM-DD"
        ) from err


def parse_instant(value: str) -> datetime:
    """Parse an ISO 8601 instant for command-line arguments.

    A value without an offset is kept naive and later read as UTC.

    Raises:
        argparse.ArgumentTypeError: If the value is not ISO 8601
    """
    try:
        return datetime.fromisoformat(value)
    except ValueError as err:
        raise argparse.ArgumentTypeError(
            f"Invalid instant: {value}. Use ISO 8601, e.g. 2024-01-01T08:00:00+00:00"
        ) from err


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", type=Path, metavar="FILE", help="YAML configuration file to load"
    )
    parser.add_argument(
        "--database", type=Path, metavar="FILE", help="SQLite database file (overrides config)"
    )
    parser.add_argument(
        "--now",
        type=parse_instant,
        metavar="INSTANT",
        help="Reference instant instead of the current time (ISO 8601)",
    )

    logging_group = parser.add_argument_group("logging", "Logging configuration options")
    logging_group.add_argument(
        "--log-level", choices=LOG_LEVEL_CHOICES, help="Set both console and file log levels"
    )
    logging_group.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    logging_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Only show errors on console (sets console level to ERROR)",
    )
    logging_group.add_argument("--log-dir", type=Path, help="Write log files to this directory")
    logging_group.add_argument(
        "--no-log-colors", action="store_true", help="Disable colored console output"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the command line argument parser.

    Returns:
        ArgumentParser with the preview, sync and report subcommands

    Example:
        >>> parser = create_parser()
        >>> args = parser.parse_args(["preview", "series.yaml", "--verbose"])
        >>> args.command
        'preview'
    """
    parser = argparse.ArgumentParser(
        prog="eventseries",
        description="EventSeries - materialize recurring event series into dated occurrences",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s preview series.yaml            # Show the dates a series would generate
  %(prog)s sync series.yaml               # Store a series and create its occurrences
  %(prog)s report --unwarned --mark-sent  # List expiring/expired series and flag them
        """,
    )
    parser.add_argument(
        "--version", action="version", version="%(prog)s 1.0.0", help="Show version information"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    preview = subparsers.add_parser(
        "preview", help="Print the occurrences a series definition would generate"
    )
    preview.add_argument("series_file", type=Path, help="YAML file with the series definition")
    preview.add_argument(
        "--from",
        dest="from_date",
        type=parse_date,
        metavar="YYYY-MM-DD",
        help="Generate from this date instead of the series start date",
    )
    _add_common_arguments(preview)

    sync = subparsers.add_parser(
        "sync", help="Store a series and create or reconcile its occurrences"
    )
    sync.add_argument("series_file", type=Path, help="YAML file with the series definition")
    sync.add_argument(
        "--full",
        action="store_true",
        help="Also regenerate missing dates when the expiry did not change",
    )
    _add_common_arguments(sync)

    report = subparsers.add_parser("report", help="List expiring and expired series")
    report.add_argument(
        "--window",
        type=int,
        metavar="DAYS",
        help="Days ahead a series counts as expiring (overrides config)",
    )
    report.add_argument(
        "--unwarned", action="store_true", help="Only list series whose warning was not sent"
    )
    report.add_argument(
        "--mark-sent", action="store_true", help="Flag the listed series as warned"
    )
    _add_common_arguments(report)

    return parser


__all__ = [
    "LOG_LEVEL_CHOICES",
    "create_parser",
    "parse_date",
    "parse_instant",
]
