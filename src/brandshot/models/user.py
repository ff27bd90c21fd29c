"""User entity - account owner carrying the daily quota ledger."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """User owns jobs and assets and carries the per-day generation counter."""

    __tablename__ = "users"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: Optional[str] = Field(default=None, max_length=320, unique=True, index=True)
    preferred_locale: str = Field(default="en", max_length=16)

    # Quota ledger (reset externally at the daily boundary)
    quota_daily: int = Field(default=2, ge=0)
    quota_used_today: int = Field(default=0, ge=0)
    quota_refreshed_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def quota_remaining(self) -> int:
        return max(self.quota_daily - self.quota_used_today, 0)
