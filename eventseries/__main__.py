"""Entry point for `python -m eventseries` command."""

import asyncio
import logging
import sys

from eventseries.cli import main_entry

logger = logging.getLogger(__name__)


def main() -> None:
    """Entry point for python -m eventseries and the console script."""
    try:
        exit_code = asyncio.run(main_entry())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("Operation cancelled by user")
        sys.exit(130)
    except Exception:
        logger.exception("Unexpected error")
        sys.exit(1)


if __name__ == "__main__":
    main()
