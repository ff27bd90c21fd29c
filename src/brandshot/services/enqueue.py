"""Enqueue path: quota reservation and job insertion in one transaction."""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog

from brandshot.models.job import GenerationJob, TaskType
from brandshot.uow import UnitOfWork

logger = structlog.get_logger()


@dataclass
class EnqueueResult:
    """Result of a successful enqueue."""

    job: GenerationJob
    remaining_quota: int


def clamp_quantity(quantity: int | None, max_quantity: int) -> int:
    """Clamp a requested asset count into [1, max_quantity]."""
    if not quantity or quantity < 1:
        return 1
    return min(quantity, max_quantity)


async def enqueue_job(
    uow: UnitOfWork,
    user_id: UUID,
    task_type: TaskType,
    prompt: dict[str, Any],
    quantity: int,
    aspect_ratio: str,
    provider: str,
    max_quantity: int,
) -> EnqueueResult:
    """Reserve quota and insert a QUEUED job inside the caller's Unit of Work.

    Both writes share the UoW transaction: if the reservation fails nothing is
    inserted, and if the insert fails the reservation rolls back with it.

    Args:
        uow: Open Unit of Work (commits on context exit)
        user_id: Owner of the job and of the quota
        task_type: IMAGE_GEN or VIDEO_GEN
        prompt: Opaque structured prompt payload
        quantity: Requested asset count (clamped to max_quantity)
        aspect_ratio: Requested aspect ratio, e.g. "1:1"
        provider: Requested provider identifier
        max_quantity: Plan cap on assets per job

    Returns:
        EnqueueResult with the job and the quota left after reservation

    Raises:
        QuotaExceededError: If the quota cannot cover the quantity
        UserNotFoundError: If the user does not exist
    """
    quantity = clamp_quantity(quantity, max_quantity)

    remaining = await uow.users.reserve_quota(user_id, quantity)
    job = await uow.jobs.enqueue(
        user_id=user_id,
        task_type=task_type,
        prompt=prompt,
        quantity=quantity,
        aspect_ratio=aspect_ratio or "1:1",
        provider=(provider or "").strip().lower(),
    )

    logger.info(
        "job.enqueued",
        job_id=str(job.id),
        user_id=str(user_id),
        task_type=task_type.value,
        provider=job.provider,
        quantity=quantity,
        remaining_quota=remaining,
    )
    return EnqueueResult(job=job, remaining_quota=remaining)
