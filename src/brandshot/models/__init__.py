"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from brandshot.models.asset import Asset, AssetKind
from brandshot.models.job import (
    GenerationJob,
    InvalidStateTransition,
    JobStatus,
    TaskType,
)
from brandshot.models.user import User

__all__ = [
    "User",
    "GenerationJob",
    "JobStatus",
    "TaskType",
    "InvalidStateTransition",
    "Asset",
    "AssetKind",
]
