"""CLI command resetting every user's daily quota counter.

Usage:
    python -m brandshot.cli.reset_quota [OPTIONS]

Examples:
    # Reset all counters (run once a day, e.g. from cron)
    python -m brandshot.cli.reset_quota

    # Verbose logging
    python -m brandshot.cli.reset_quota -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog
from sqlalchemy.exc import SQLAlchemyError

from brandshot.core import timezone  # noqa: F401
from brandshot.core.config import Settings, configure_logging
from brandshot.core.database import setup_db_session
from brandshot.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args() -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Reset daily generation quota for all users")

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


async def async_main() -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args()

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        async with await uow_factory() as uow:
            reset_count = await uow.users.reset_daily_quota()
    except SQLAlchemyError as e:
        logger.error("cli.reset_failed", error=str(e), error_type=type(e).__name__)
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    logger.info("cli.quota_reset", users_reset=reset_count)
    print(f"Daily quota reset for {reset_count} user(s)")
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
