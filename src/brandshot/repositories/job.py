"""GenerationJob repository for brandshot.

The job store contract: enqueue, claim, finalize and read. Claiming relies on
PostgreSQL row locks so that any number of dispatchers can poll the same
table without coordinating with each other.
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from brandshot.models.job import GenerationJob, JobStatus, TaskType
from brandshot.services.exceptions import JobNotFoundError, NoJobAvailable

STALE_JOB_MESSAGE = "Job abandoned while running (worker stopped before finalizing)"


class JobRepository:
    """Repository for GenerationJob entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def enqueue(
        self,
        user_id: UUID,
        task_type: TaskType,
        prompt: dict[str, Any],
        quantity: int,
        aspect_ratio: str,
        provider: str,
    ) -> GenerationJob:
        """Insert a new job in QUEUED state.

        Must run in the same transaction as the quota reservation backing it
        (see brandshot.services.enqueue.enqueue_job).

        Returns:
            Persisted job with generated ID
        """
        job = GenerationJob(
            user_id=user_id,
            task_type=task_type,
            status=JobStatus.QUEUED,
            prompt_json=prompt,
            quantity=quantity,
            aspect_ratio=aspect_ratio,
            provider=provider,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def claim(self) -> GenerationJob:
        """Claim the oldest queued job for this worker.

        Query explanation:
        - WHERE status = 'QUEUED': Only unclaimed jobs
        - ORDER BY created_at ASC: Oldest first (FIFO)
        - LIMIT 1: One job per claim
        - FOR UPDATE SKIP LOCKED: Lock the row, skip rows other workers hold

        The row is flipped to RUNNING in the same transaction; once the caller
        commits, the status itself keeps other workers away.

        Returns:
            Job now in RUNNING state

        Raises:
            NoJobAvailable: If the queue is empty (or every queued row is locked)
        """
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.status == JobStatus.QUEUED)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.asc())  # type: ignore[attr-defined]
            .limit(1)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        job = result.scalar_one_or_none()
        if job is None:
            raise NoJobAvailable("No queued jobs")

        job.mark_running()
        self.session.add(job)
        await self.session.flush()
        return job

    async def finalize(
        self,
        job_id: UUID,
        status: JobStatus,
        error_message: Optional[str] = None,
        resolved_provider: Optional[str] = None,
    ) -> GenerationJob:
        """Set a terminal status on a running job.

        Idempotent: finalizing a job that is already terminal leaves it as is.

        Args:
            job_id: Job to finalize
            status: SUCCEEDED or FAILED
            error_message: Failure reason, stored only for FAILED
            resolved_provider: Provider name the registry actually used

        Returns:
            The job after the update

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidStateTransition: If the job was never claimed
        """
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.id == job_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        job = result.scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        if job.finalize(status, error_message):
            if resolved_provider:
                job.resolved_provider = resolved_provider
            self.session.add(job)
            await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID, user_id: Optional[UUID] = None) -> GenerationJob:
        """Retrieve job by UUID, optionally scoped to its owner.

        Args:
            job_id: Job's unique identifier
            user_id: If given, the job must belong to this user

        Raises:
            JobNotFoundError: If absent or owned by someone else
        """
        stmt = select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        if user_id is not None:
            stmt = stmt.where(GenerationJob.user_id == user_id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        job = result.scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def fail_stale_running(self, older_than: timedelta) -> int:
        """Fail jobs stuck in RUNNING after a worker crash.

        Jobs are never put back to QUEUED (status only moves forward), so a
        RUNNING row that has not been touched for `older_than` is finalized as
        FAILED instead.

        Returns:
            Number of jobs failed
        """
        cutoff = datetime.utcnow() - older_than
        result = await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.status == JobStatus.RUNNING)  # type: ignore[arg-type]
            .where(GenerationJob.updated_at < cutoff)  # type: ignore[arg-type]
            .values(
                status=JobStatus.FAILED,
                error_message=STALE_JOB_MESSAGE,
                updated_at=datetime.utcnow(),
            )
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def count_by_status(self) -> dict[str, int]:
        result = await self.session.execute(
            select(GenerationJob.status, func.count(GenerationJob.id)).group_by(  # type: ignore[arg-type]
                GenerationJob.status
            )
        )
        return {JobStatus(status).value: count for status, count in result.all()}
