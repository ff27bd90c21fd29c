"""User repository for brandshot.

Provides data access for users and the quota ledger embedded in the user row.
"""

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from brandshot.models.user import User
from brandshot.services.exceptions import QuotaExceededError, UserNotFoundError

logger = structlog.get_logger()


class UserRepository:
    """Repository for User entities and quota reservation.

    Methods:
    - get_by_id: Retrieve user by UUID
    - add: Persist new user
    - reserve_quota: Lock the user row and consume quota atomically
    - refund_quota: Give back quota for a failed job
    - reset_daily_quota: Zero every user's counter at the daily boundary
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        self.session.add(user)
        await self.session.flush()
        return user

    async def reserve_quota(self, user_id: UUID, quantity: int) -> int:
        """Consume `quantity` units of the user's daily quota.

        The user row is locked with SELECT ... FOR UPDATE, so concurrent
        reservations for the same user serialize on the row and each one sees
        the counter left by the previous transaction. The lock is held until
        the surrounding transaction (which also inserts the job) commits.

        Args:
            user_id: Owner of the quota
            quantity: Units to reserve (already clamped to the plan cap)

        Returns:
            Quota remaining after the reservation

        Raises:
            UserNotFoundError: If the user does not exist
            QuotaExceededError: If used + quantity would exceed the daily limit
        """
        if quantity < 1:
            raise ValueError(f"quantity must be positive, got {quantity}")

        result = await self.session.execute(
            select(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")

        if user.quota_used_today + quantity > user.quota_daily:
            raise QuotaExceededError(user_id, quantity, user.quota_remaining)

        user.quota_used_today += quantity
        user.quota_refreshed_at = datetime.utcnow()
        user.updated_at = datetime.utcnow()
        self.session.add(user)
        await self.session.flush()

        logger.info(
            "quota.reserved",
            user_id=str(user_id),
            quantity=quantity,
            remaining=user.quota_remaining,
        )
        return user.quota_remaining

    async def refund_quota(self, user_id: UUID, quantity: int) -> int:
        """Return previously reserved quota, never dropping below zero.

        Returns:
            Quota remaining after the refund

        Raises:
            UserNotFoundError: If the user does not exist
        """
        result = await self.session.execute(
            select(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")

        user.quota_used_today = max(user.quota_used_today - quantity, 0)
        user.updated_at = datetime.utcnow()
        self.session.add(user)
        await self.session.flush()

        logger.info(
            "quota.refunded",
            user_id=str(user_id),
            quantity=quantity,
            remaining=user.quota_remaining,
        )
        return user.quota_remaining

    async def reset_daily_quota(self) -> int:
        """Reset quota_used_today for every user.

        Returns:
            Number of user rows touched
        """
        now = datetime.utcnow()
        result = await self.session.execute(
            update(User)
            .where(User.quota_used_today > 0)  # type: ignore[arg-type]
            .values(quota_used_today=0, quota_refreshed_at=now, updated_at=now)
        )
        return result.rowcount  # type: ignore[attr-defined]
