"""Asset repository for brandshot.

Assets are append-only, so this repository only inserts and reads.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brandshot.models.asset import Asset


class AssetRepository:
    """Repository for Asset entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, asset: Asset) -> Asset:
        """Persist new asset to database.

        Args:
            asset: Asset entity to persist

        Returns:
            Persisted asset with generated ID
        """
        self.session.add(asset)
        await self.session.flush()
        return asset

    async def get_by_id(self, asset_id: UUID) -> Asset | None:
        result = await self.session.execute(select(Asset).where(Asset.id == asset_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def list_by_job(self, job_id: UUID) -> list[Asset]:
        """Retrieve all assets produced by a job, oldest first."""
        result = await self.session.execute(
            select(Asset)
            .where(Asset.job_id == job_id)  # type: ignore[arg-type]
            .order_by(Asset.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
