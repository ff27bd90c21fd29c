"""Asset entity - generated artifact belonging to exactly one job."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, Column
from sqlmodel import Field, SQLModel


class AssetKind(str, Enum):
    """Media kind of a stored asset."""

    IMAGE = "image"
    VIDEO = "video"


class Asset(SQLModel, table=True):
    """Asset rows are append-only: inserted once after generation, never updated."""

    __tablename__ = "assets"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    job_id: UUID = Field(foreign_key="generation_jobs.id", index=True)
    kind: AssetKind
    storage_key: str = Field(max_length=1024)
    format: str = Field(max_length=100)
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    byte_size: int = Field(default=0, ge=0, sa_type=BigInteger)
    aspect_ratio: Optional[str] = Field(default=None, max_length=16)
    properties: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow)
