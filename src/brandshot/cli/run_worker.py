"""CLI command running generation dispatchers without the HTTP server.

Usage:
    python -m brandshot.cli [OPTIONS]
    python -m brandshot.cli.run_worker [OPTIONS]

Examples:
    # One dispatcher per WORKER_CONCURRENCY
    python -m brandshot.cli

    # Four dispatchers, verbose logging
    python -m brandshot.cli --concurrency 4 -v

    # Skip failing stale RUNNING jobs on startup
    python -m brandshot.cli --skip-recovery
"""

import asyncio
import signal
import sys
from argparse import ArgumentParser, Namespace

import httpx
import structlog

from brandshot.core import timezone  # noqa: F401
from brandshot.core.config import Settings, configure_logging
from brandshot.core.database import setup_db_session
from brandshot.services.generation.registry import build_provider_registry
from brandshot.services.storage import FileStore
from brandshot.uow import create_uow_factory
from brandshot.workers.generation_worker import GenerationDispatcher, fail_stale_jobs

logger = structlog.get_logger()


def parse_args() -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Run generation dispatchers",
        epilog="Stops gracefully on SIGINT/SIGTERM; in-flight jobs are failed, not requeued",
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of dispatcher tasks (default: WORKER_CONCURRENCY)",
    )

    parser.add_argument(
        "--skip-recovery",
        action="store_true",
        help="Do not fail stale RUNNING jobs on startup",
    )

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
        Exit code: 0 (clean shutdown), 1 (error)
    """
    args = parse_args()

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)
    settings.warn_missing_credentials()

    concurrency = args.concurrency or settings.worker_concurrency
    if concurrency < 1:
        print("Error: --concurrency must be at least 1", file=sys.stderr)
        return 1

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    async with httpx.AsyncClient(timeout=settings.generation_timeout_seconds) as http_client:
        try:
            registry = build_provider_registry(settings, http_client)
        except ValueError as e:
            logger.error("cli.invalid_configuration", error=str(e))
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if not args.skip_recovery:
            await fail_stale_jobs(uow_factory, settings)

        store = FileStore(settings.storage_path)
        limiter = (
            asyncio.Semaphore(settings.max_concurrent_generations)
            if settings.max_concurrent_generations > 0
            else None
        )
        dispatchers = [
            GenerationDispatcher(
                uow_factory,
                registry,
                settings,
                store=store,
                http_client=http_client,
                limiter=limiter,
                shutdown=shutdown_event,
                name=f"dispatcher-{index}",
            )
            for index in range(concurrency)
        ]

        logger.info("cli.started", workers=concurrency)
        tasks = [asyncio.create_task(d.run()) for d in dispatchers]

        await shutdown_event.wait()
        logger.info("cli.shutdown_requested")

        # Dispatchers finish their current poll; cancel whatever is mid-job
        _, pending = await asyncio.wait(tasks, timeout=settings.poll_interval_seconds)
        for task in pending:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)

    failures = [r for r in results if isinstance(r, Exception)]
    for failure in failures:
        logger.error("cli.worker_failed", error=str(failure), error_type=type(failure).__name__)

    logger.info("cli.stopped")
    return 1 if failures else 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
