"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import httpx
import structlog
from fastapi import FastAPI, Response, status
from sqlalchemy import text

from brandshot.core import timezone  # noqa: F401
from brandshot.core.config import Settings, configure_logging
from brandshot.core.database import setup_db_session
from brandshot.services.generation.registry import build_provider_registry
from brandshot.services.storage import FileStore
from brandshot.uow import create_uow_factory
from brandshot.workers.generation_worker import GenerationDispatcher, fail_stale_jobs

logger = structlog.get_logger()

RESTART_DELAY = 1  # Fixed 1 second delay between restarts


def create_resilient_worker(
    coro_factory: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
    tasks: set[asyncio.Task],
) -> asyncio.Task:
    """Create a worker with automatic restart on failure.

    Args:
        coro_factory: Zero-argument callable returning a fresh worker coroutine
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown
        tasks: Live task set; restarted tasks replace crashed ones here so
            shutdown can cancel whatever is currently running

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """

    def on_worker_done(task: asyncio.Task):
        tasks.discard(task)

        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Dispatchers only return after shutdown, so this is unexpected
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            # Check again if shutdown was requested during sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            start()

        tasks.add(asyncio.create_task(restart_worker()))

    def start() -> asyncio.Task:
        task = asyncio.create_task(coro_factory())
        task.add_done_callback(on_worker_done)
        tasks.add(task)
        return task

    return start()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: configure logging, build the session factory, provider registry,
      limiter and file store, fail stale jobs, start WORKER_CONCURRENCY dispatchers
    - Shutdown: stop dispatchers, close the shared HTTP client
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)
    settings.warn_missing_credentials()

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory

    http_client = httpx.AsyncClient(timeout=settings.generation_timeout_seconds)
    registry = build_provider_registry(settings, http_client)
    store = FileStore(settings.storage_path)
    limiter = (
        asyncio.Semaphore(settings.max_concurrent_generations)
        if settings.max_concurrent_generations > 0
        else None
    )

    try:
        await fail_stale_jobs(uow_factory, settings)
    except Exception as e:
        # Log error but don't prevent startup - dispatchers can still run
        logger.error(
            "startup.recovery_failed",
            error=str(e),
            error_type=type(e).__name__,
        )

    shutdown_event = asyncio.Event()
    tasks: set[asyncio.Task] = set()

    for index in range(settings.worker_concurrency):
        dispatcher = GenerationDispatcher(
            uow_factory,
            registry,
            settings,
            store=store,
            http_client=http_client,
            limiter=limiter,
            shutdown=shutdown_event,
            name=f"dispatcher-{index}",
        )
        create_resilient_worker(dispatcher.run, dispatcher.name, shutdown_event, tasks)

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        workers=settings.worker_concurrency,
    )

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    pending = list(tasks)
    for task in pending:
        task.cancel()

    # Wait for cancellation to complete (ignore CancelledError)
    await asyncio.gather(*pending, return_exceptions=True)
    await http_client.aclose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="brandshot",
        description="Generation-job pipeline for marketing images and videos",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test and queue depth.

        Returns:
            200: {"status": "healthy", "jobs": {...}} if the database answers
            503: {"status": "unhealthy", "error": {...}} if it does not
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            async with await app.state.uow_factory() as uow:
                jobs = await uow.jobs.count_by_status()

            logger.debug("health_check.success")
            return {"status": "healthy", "jobs": jobs}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
