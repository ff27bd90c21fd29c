"""create_generation_pipeline_schema

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-18 09:12:41.207315

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

job_status = sa.Enum("QUEUED", "RUNNING", "SUCCEEDED", "FAILED", name="jobstatus")
task_type = sa.Enum("IMAGE_GEN", "VIDEO_GEN", name="tasktype")
asset_kind = sa.Enum("IMAGE", "VIDEO", name="assetkind")


def upgrade() -> None:
    """Create users, generation_jobs and assets tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("preferred_locale", sa.String(length=16), nullable=False),
        sa.Column("quota_daily", sa.Integer(), nullable=False),
        sa.Column("quota_used_today", sa.Integer(), nullable=False),
        sa.Column("quota_refreshed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quota_used_today >= 0", name="ck_users_quota_used_nonnegative"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "generation_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("task_type", task_type, nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("provider", sa.String(length=100), nullable=False),
        sa.Column("resolved_provider", sa.String(length=100), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("aspect_ratio", sa.String(length=16), nullable=False),
        sa.Column("prompt_json", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity >= 1", name="ck_generation_jobs_quantity_positive"),
    )
    op.create_index(op.f("ix_generation_jobs_user_id"), "generation_jobs", ["user_id"])
    op.create_index(op.f("ix_generation_jobs_status"), "generation_jobs", ["status"])
    op.create_index(op.f("ix_generation_jobs_created_at"), "generation_jobs", ["created_at"])
    # Claim query: WHERE status = 'QUEUED' ORDER BY created_at
    op.create_index(
        "ix_generation_jobs_status_created_at", "generation_jobs", ["status", "created_at"]
    )

    op.create_table(
        "assets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("kind", asset_kind, nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("format", sa.String(length=100), nullable=False),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("byte_size", sa.BigInteger(), nullable=False),
        sa.Column("aspect_ratio", sa.String(length=16), nullable=True),
        sa.Column("properties", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_assets_user_id"), "assets", ["user_id"])
    op.create_index(op.f("ix_assets_job_id"), "assets", ["job_id"])


def downgrade() -> None:
    """Drop the generation pipeline schema."""
    op.drop_index(op.f("ix_assets_job_id"), table_name="assets")
    op.drop_index(op.f("ix_assets_user_id"), table_name="assets")
    op.drop_table("assets")

    op.drop_index("ix_generation_jobs_status_created_at", table_name="generation_jobs")
    op.drop_index(op.f("ix_generation_jobs_created_at"), table_name="generation_jobs")
    op.drop_index(op.f("ix_generation_jobs_status"), table_name="generation_jobs")
    op.drop_index(op.f("ix_generation_jobs_user_id"), table_name="generation_jobs")
    op.drop_table("generation_jobs")

    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    asset_kind.drop(op.get_bind(), checkfirst=True)
    task_type.drop(op.get_bind(), checkfirst=True)
    job_status.drop(op.get_bind(), checkfirst=True)
