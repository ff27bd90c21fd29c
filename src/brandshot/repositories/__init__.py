"""Repository layer for brandshot.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from brandshot.repositories.asset import AssetRepository
from brandshot.repositories.job import JobRepository
from brandshot.repositories.user import UserRepository

__all__ = [
    "UserRepository",
    "JobRepository",
    "AssetRepository",
]
