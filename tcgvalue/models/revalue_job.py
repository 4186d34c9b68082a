"""
TCG Value — Revalue Job Model

Queue of pending per-user revaluations. At most one active (queued or
running) row per user, enforced by a partial unique index so concurrent
enqueuers never need application-level locking. Rows are never deleted;
finished jobs are the audit trail.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from tcgvalue.config import ACTIVE_JOB_STATUSES
from tcgvalue.models.base import Base, BigIntId

ACTIVE_JOB_PREDICATE = "status IN ({})".format(", ".join(f"'{s.value}'" for s in ACTIVE_JOB_STATUSES))


class RevalueJob(Base):
    """A request to recompute one user's collection valuations."""

    __tablename__ = "user_revalue_jobs"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default="queued", comment="queued | running | done | failed"
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "ux_user_revalue_jobs_active_user",
            "user_id",
            unique=True,
            postgresql_where=text(ACTIVE_JOB_PREDICATE),
            sqlite_where=text(ACTIVE_JOB_PREDICATE),
        ),
        Index("ix_user_revalue_jobs_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<RevalueJob id={self.id} user_id={self.user_id!r} status={self.status!r}>"
