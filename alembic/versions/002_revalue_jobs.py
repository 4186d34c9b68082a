"""Revaluation job queue with one active job per user

Revision ID: 002_revalue_jobs
Revises: 001_collection_valuations
Create Date: 2026-10-12

The partial unique index is what makes enqueue an
INSERT ... ON CONFLICT DO NOTHING: a second queued/running row for the same
user cannot exist.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "002_revalue_jobs"
down_revision: Union[str, None] = "001_collection_valuations"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user_revalue_jobs",
        sa.Column("id", sa.BIGINT(), sa.Identity(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="queued"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'done', 'failed')",
            name="ck_user_revalue_jobs_status",
        ),
    )
    op.create_index(
        "ux_user_revalue_jobs_active_user",
        "user_revalue_jobs",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('queued', 'running')"),
    )
    op.create_index(
        "ix_user_revalue_jobs_status_created",
        "user_revalue_jobs",
        ["status", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_user_revalue_jobs_status_created", table_name="user_revalue_jobs")
    op.drop_index("ux_user_revalue_jobs_active_user", table_name="user_revalue_jobs")
    op.drop_table("user_revalue_jobs")
