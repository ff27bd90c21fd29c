"""GenerationJob entity - one enqueued generation request with lifecycle status."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class JobStatus(str, Enum):
    """Job lifecycle status."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class TaskType(str, Enum):
    """Kind of media a job produces."""

    IMAGE_GEN = "IMAGE_GEN"
    VIDEO_GEN = "VIDEO_GEN"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition."""

    pass


class GenerationJob(SQLModel, table=True):
    """GenerationJob tracks a queued request from enqueue through finalize."""

    __tablename__ = "generation_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    task_type: TaskType
    status: JobStatus = Field(default=JobStatus.QUEUED, index=True)
    provider: str = Field(max_length=100)
    resolved_provider: Optional[str] = Field(default=None, max_length=100)
    quantity: int = Field(default=1, ge=1)
    aspect_ratio: str = Field(default="1:1", max_length=16)
    prompt_json: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def mark_running(self) -> None:
        """Transition from queued to running.

        Raises:
            InvalidStateTransition: If current status is not queued
        """
        if self.status != JobStatus.QUEUED:
            raise InvalidStateTransition(
                f"Cannot mark running from {self.status.value}. Job must be in QUEUED state."
            )
        self.status = JobStatus.RUNNING
        self.updated_at = datetime.utcnow()

    def finalize(self, status: JobStatus, error_message: Optional[str] = None) -> bool:
        """Move a running job into a terminal state.

        Finalizing a job that is already terminal is a no-op so that a
        repeated finalize (e.g. after a retried database round-trip) succeeds
        without touching the row again.

        Args:
            status: SUCCEEDED or FAILED
            error_message: Human-readable failure reason (truncated to 1000 chars)

        Returns:
            True if the job changed state, False if it was already terminal

        Raises:
            ValueError: If status is not terminal
            InvalidStateTransition: If the job has not been claimed yet
        """
        if not status.is_terminal:
            raise ValueError(f"Finalize requires a terminal status, got {status.value}")
        if self.status.is_terminal:
            return False
        if self.status != JobStatus.RUNNING:
            raise InvalidStateTransition(
                f"Cannot finalize from {self.status.value}. Job must be in RUNNING state."
            )
        self.status = status
        if status == JobStatus.FAILED and error_message:
            self.error_message = error_message[:1000]
        self.updated_at = datetime.utcnow()
        return True
