"""CLI module for EventSeries.

This module provides the command-line interface: argument parsing,
settings and logging setup, and dispatch to the subcommand handlers.
"""

import logging
from typing import Optional

import yaml
from pydantic import ValidationError

from ..config.settings import configure_settings, get_settings
from ..exceptions import EventSeriesError
from ..timezone.service import TimezoneError
from ..utils.logging import apply_command_line_overrides, setup_logging
from .commands import run_preview, run_report, run_sync
from .parser import create_parser, parse_date, parse_instant

logger = logging.getLogger(__name__)

_COMMANDS = {
    "preview": run_preview,
    "report": run_report,
    "sync": run_sync,
}


async def main_entry(argv: Optional[list[str]] = None) -> int:
    """Main entry point with argument parsing.

    Args:
        argv: Arguments to parse, defaults to sys.argv

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = configure_settings(config_path=args.config) if args.config else get_settings()
    settings = apply_command_line_overrides(settings, args)
    setup_logging(settings)

    handler = _COMMANDS[args.command]
    try:
        return await handler(args, settings)
    except EventSeriesError as e:
        logger.error(f"{args.command} failed: {e.message}")
    except TimezoneError as e:
        logger.error(f"{args.command} failed: {e}")
    except ValidationError as e:
        logger.error(f"Invalid series definition: {e}")
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"{args.command} failed: {e}")
    return 1


__all__ = [
    "create_parser",
    "main_entry",
    "parse_date",
    "parse_instant",
]
