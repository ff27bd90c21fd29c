"""Generation dispatcher: claims queued jobs and runs them through provider chains.

Each dispatcher loops Idle -> Claiming -> Dispatching -> Finalizing -> Idle.
Any number of dispatchers (tasks in one process or separate processes) can
poll the same table; the atomic claim is the only coordination between them.

Transactions are short and never span provider calls:
    1. claim (commit flips the job to RUNNING)
    2. request building (read-only: user locale, source asset)
    3. provider fan-out, outside any transaction
    4. asset persistence + finalize + optional refund (one commit, retried
       with backoff until it lands or shutdown is requested)
"""

import asyncio
import contextlib
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from brandshot.core.config import Settings
from brandshot.models.job import GenerationJob, InvalidStateTransition, JobStatus, TaskType
from brandshot.services.asset_sink import AssetSink
from brandshot.services.exceptions import JobNotFoundError, NoJobAvailable
from brandshot.services.generation.orchestrator import FallbackGenerator
from brandshot.services.generation.prompt import (
    PromptPayload,
    build_image_requests,
    build_video_requests,
)
from brandshot.services.generation.registry import ProviderRegistry
from brandshot.services.generation.types import GeneratedAsset, GenerationRequest, MediaKind
from brandshot.services.source_image import resolve_source_image
from brandshot.services.storage import FileStore
from brandshot.uow import UnitOfWork

logger = structlog.get_logger(__name__)

SHUTDOWN_MESSAGE = "worker shutdown"

UowFactory = Callable[[], Awaitable[UnitOfWork]]


def media_kind_for(task_type: TaskType) -> MediaKind:
    return MediaKind.VIDEO if task_type == TaskType.VIDEO_GEN else MediaKind.IMAGE


class GenerationDispatcher:
    """One polling worker. Never crashes on generation or persistence errors."""

    def __init__(
        self,
        uow_factory: UowFactory,
        registry: ProviderRegistry,
        settings: Settings,
        sink: Optional[AssetSink] = None,
        store: Optional[FileStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[asyncio.Semaphore] = None,
        shutdown: Optional[asyncio.Event] = None,
        name: str = "dispatcher-0",
    ):
        """Initialize a dispatcher.

        Args:
            uow_factory: Creates a UnitOfWork per transaction
            registry: Provider registry, built once at startup
            settings: Poll interval, backoff, limits and open-question toggles
            sink: Asset sink (defaults to one writing into `store`)
            store: File store for generated bytes and source images
            http_client: Shared client for source image downloads
            limiter: System-wide cap on in-flight generation calls
            shutdown: Set to stop the loop after the current job
            name: Worker name for logs
        """
        self.uow_factory = uow_factory
        self.registry = registry
        self.settings = settings
        self.store = store
        self.sink = sink or AssetSink(store)
        self.http_client = http_client
        self.limiter = limiter
        self.shutdown = shutdown or asyncio.Event()
        self.name = name

    async def run(self) -> None:
        """Poll until the shutdown event is set or the task is cancelled."""
        logger.info(
            "worker.started",
            worker=self.name,
            poll_interval=self.settings.poll_interval_seconds,
        )
        try:
            while not self.shutdown.is_set():
                try:
                    job = await self.claim_next()
                except NoJobAvailable:
                    logger.debug("job.none_available", worker=self.name)
                    await self._idle(self.settings.poll_interval_seconds)
                    continue
                except Exception as e:
                    logger.error(
                        "job.claim_failed",
                        worker=self.name,
                        error_type=type(e).__name__,
                        error_message=str(e),
                    )
                    await self._idle(self.settings.claim_error_backoff_seconds)
                    continue

                await self.process(job)
        except asyncio.CancelledError:
            logger.info("worker.stopped", worker=self.name, reason="cancelled")
            raise

        logger.info("worker.stopped", worker=self.name, reason="shutdown")

    async def claim_next(self) -> GenerationJob:
        """Claim the oldest queued job and commit the RUNNING transition.

        Raises:
            NoJobAvailable: If the queue is empty
        """
        async with await self.uow_factory() as uow:
            job = await uow.jobs.claim()
        logger.info(
            "job.claimed",
            worker=self.name,
            job_id=str(job.id),
            task_type=job.task_type.value,
            provider=job.provider,
            quantity=job.quantity,
        )
        return job

    async def process(self, job: GenerationJob) -> JobStatus:
        """Run a claimed job to a terminal status.

        Only cancellation escapes: the job is failed with SHUTDOWN_MESSAGE in a
        fresh transaction first, then the cancellation is re-raised.

        Returns:
            Terminal status the job was finalized with, or RUNNING if the
            finalize transaction was abandoned without committing
        """
        start_time = time.time()
        kind = media_kind_for(job.task_type)
        chain, resolved = self.registry.resolve(kind, job.provider)
        log = logger.bind(worker=self.name, job_id=str(job.id), provider=resolved)

        try:
            requests = await self.build_requests(job, resolved)
        except asyncio.CancelledError:
            await self._fail_on_shutdown(job, resolved)
            raise
        except Exception as e:
            log.error("job.failed", stage="prepare", error_type=type(e).__name__, error=str(e))
            message = f"Invalid job payload: {e}"
            if not await self._finalize(job, JobStatus.FAILED, message, resolved, []):
                return JobStatus.RUNNING
            return JobStatus.FAILED

        try:
            outcomes = await asyncio.gather(
                *(self._run_unit(chain, request) for request in requests),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            await self._fail_on_shutdown(job, resolved)
            raise

        results = [o for o in outcomes if isinstance(o, GeneratedAsset)]
        errors = [o for o in outcomes if isinstance(o, BaseException)]

        if errors:
            message = str(errors[0]) or type(errors[0]).__name__
            log.error(
                "job.failed",
                stage="generate",
                failed_units=len(errors),
                total_units=len(outcomes),
                error_type=type(errors[0]).__name__,
                error=message,
                duration_seconds=round(time.time() - start_time, 3),
            )
            keep = results if self.settings.persist_partial_results else []
            if not await self._finalize(job, JobStatus.FAILED, message, resolved, keep):
                return JobStatus.RUNNING
            return JobStatus.FAILED

        if not await self._finalize(job, JobStatus.SUCCEEDED, None, resolved, results):
            return JobStatus.RUNNING
        log.info(
            "job.succeeded",
            assets=len(results),
            duration_seconds=round(time.time() - start_time, 3),
        )
        return JobStatus.SUCCEEDED

    async def build_requests(self, job: GenerationJob, provider: str) -> list[GenerationRequest]:
        """Decode the job's prompt into one request per generation unit."""
        if job.task_type == TaskType.VIDEO_GEN:
            return build_video_requests(
                job.prompt_json,
                job_id=str(job.id),
                provider=provider,
                quantity=job.quantity,
                aspect_ratio=job.aspect_ratio,
            )

        async with await self.uow_factory() as uow:
            user = await uow.users.get_by_id(job.user_id)
            payload = PromptPayload.model_validate(job.prompt_json).normalized(
                preferred_locale=user.preferred_locale if user else "",
                max_quantity=self.settings.max_quantity,
            )
            source_image = await resolve_source_image(
                uow,
                job.user_id,
                payload.source_asset,
                self.store,
                self.http_client,
                self.settings.max_source_image_bytes,
            )

        return build_image_requests(
            payload,
            job_id=str(job.id),
            provider=provider,
            quantity=job.quantity,
            aspect_ratio=job.aspect_ratio,
            source_image=source_image,
        )

    async def _run_unit(self, chain: FallbackGenerator, request: GenerationRequest) -> GeneratedAsset:
        async with self.limiter or contextlib.nullcontext():
            return await chain.generate(request)

    async def _finalize(
        self,
        job: GenerationJob,
        status: JobStatus,
        error_message: Optional[str],
        provider: str,
        results: list[GeneratedAsset],
    ) -> bool:
        """Persist results, finalize and refund in one transaction.

        A failed transaction is retried after CLAIM_ERROR_BACKOFF_SECONDS until
        it commits. Once shutdown is requested the first failure ends the
        retries and the job stays RUNNING for stale-job recovery. A missing or
        unclaimed job is not retried.

        Returns:
            True once the transaction committed, False if it was abandoned
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with await self.uow_factory() as uow:
                    current = await uow.jobs.get_by_id(job.id)
                    if current.status.is_terminal:
                        # Finalized by an earlier attempt whose commit outcome was lost
                        return True
                    saved = []
                    if results:
                        saved = await self.sink.persist_all(uow, job, provider, results)
                    await uow.jobs.finalize(
                        job.id, status, error_message, resolved_provider=provider
                    )
                    if status == JobStatus.FAILED and self.settings.refund_quota_on_failure:
                        refund = job.quantity - len(saved)
                        if refund > 0:
                            await uow.users.refund_quota(job.user_id, refund)
                return True
            except (JobNotFoundError, InvalidStateTransition) as e:
                logger.error(
                    "job.finalize_failed",
                    worker=self.name,
                    job_id=str(job.id),
                    status=status.value,
                    attempt=attempt,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return False
            except Exception as e:
                logger.error(
                    "job.finalize_failed",
                    worker=self.name,
                    job_id=str(job.id),
                    status=status.value,
                    attempt=attempt,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            if self.shutdown.is_set():
                logger.warning(
                    "job.finalize_abandoned",
                    worker=self.name,
                    job_id=str(job.id),
                    status=status.value,
                    attempts=attempt,
                )
                return False
            await self._idle(self.settings.claim_error_backoff_seconds)

    async def _fail_on_shutdown(self, job: GenerationJob, provider: str) -> None:
        logger.warning("job.interrupted", worker=self.name, job_id=str(job.id))
        await self._finalize(job, JobStatus.FAILED, SHUTDOWN_MESSAGE, provider, [])

    async def _idle(self, seconds: float) -> None:
        """Sleep for the backoff, waking early on shutdown."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self.shutdown.wait(), timeout=seconds)


async def fail_stale_jobs(uow_factory: UowFactory, settings: Settings) -> int:
    """Fail jobs left RUNNING by a crashed worker.

    Args:
        uow_factory: Creates a UnitOfWork
        settings: STALE_JOB_TIMEOUT_SECONDS threshold

    Returns:
        Number of jobs failed
    """
    async with await uow_factory() as uow:
        failed = await uow.jobs.fail_stale_running(
            timedelta(seconds=settings.stale_job_timeout_seconds)
        )
    if failed > 0:
        logger.info("worker.recovery", stale_jobs_failed=failed)
    return failed


async def run_generation_worker(
    uow_factory: UowFactory,
    registry: ProviderRegistry,
    settings: Settings,
    **kwargs: Any,
) -> None:
    """Run one dispatcher until cancelled or its shutdown event is set.

    Args:
        uow_factory: Creates a UnitOfWork per transaction
        registry: Provider registry
        settings: Application settings
        **kwargs: Forwarded to GenerationDispatcher (store, http_client,
            limiter, shutdown, name)
    """
    dispatcher = GenerationDispatcher(uow_factory, registry, settings, **kwargs)
    await dispatcher.run()
