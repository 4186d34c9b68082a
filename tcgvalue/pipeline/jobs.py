"""
TCG Value — Revaluation Job Queue

Producers call enqueue_revalue whenever a collection changes. The partial
unique index ux_user_revalue_jobs_active_user (user_id WHERE status IN
('queued', 'running')) makes the insert a no-op while a job for the user is
already pending, so bursts of adds collapse into one job with no locking in
application code.

The worker side claims the oldest queued job, and records done/failed in
its own short transactions.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgvalue.config import JobStatus, settings
from tcgvalue.models.revalue_job import ACTIVE_JOB_PREDICATE, RevalueJob

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 2000

_ENQUEUE_SQL = text(f"""
    INSERT INTO user_revalue_jobs (user_id, status)
    VALUES (:user_id, 'queued')
    ON CONFLICT (user_id) WHERE {ACTIVE_JOB_PREDICATE} DO NOTHING
    RETURNING id
""")

# Strong references to fire-and-forget tasks until they finish.
_background_tasks: set[asyncio.Task[bool]] = set()


async def enqueue_revalue(session: AsyncSession, user_id: str) -> bool:
    """
    Queue a revaluation for a user unless one is already active.

    Runs in the caller's transaction; the caller commits.

    Returns:
        True if a new job row was inserted, False if one was already
        queued or running.
    """
    result = await session.execute(_ENQUEUE_SQL, {"user_id": user_id})
    queued = result.scalar_one_or_none() is not None

    logger.info(
        "revalue_job_enqueued" if queued else "revalue_job_already_active",
        user_id=user_id,
    )
    return queued


async def _enqueue_in_own_session(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
) -> bool:
    try:
        async with session_factory() as session:
            queued = await enqueue_revalue(session, user_id)
            await session.commit()
            return queued
    except Exception as e:
        logger.warning(
            "revalue_enqueue_background_failed",
            user_id=user_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


def enqueue_revalue_background(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
) -> asyncio.Task[bool]:
    """
    Fire-and-forget enqueue on a separate session.

    Failures are logged and never reach the caller. The returned task may be
    awaited (tests do) but the request path should not.
    """
    task = asyncio.create_task(_enqueue_in_own_session(session_factory, user_id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


# ---------------------------------------------------------------------------
# Worker side
# ---------------------------------------------------------------------------


async def claim_next_job(session: AsyncSession) -> RevalueJob | None:
    """
    Move the oldest queued job to running and return it.

    Uses FOR UPDATE SKIP LOCKED where the dialect supports it so concurrent
    workers never claim the same row. The caller commits.
    """
    stmt = (
        select(RevalueJob)
        .where(RevalueJob.status == JobStatus.QUEUED.value)
        .order_by(RevalueJob.created_at, RevalueJob.id)
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    job = (await session.execute(stmt)).scalar_one_or_none()
    if job is None:
        return None

    job.status = JobStatus.RUNNING.value
    job.started_at = datetime.now(timezone.utc)
    await session.flush()

    logger.info("revalue_job_claimed", job_id=job.id, user_id=job.user_id)
    return job


async def mark_job_done(session: AsyncSession, job_id: int) -> None:
    await session.execute(
        update(RevalueJob)
        .where(RevalueJob.id == job_id)
        .values(status=JobStatus.DONE.value, finished_at=datetime.now(timezone.utc), error=None)
    )
    logger.info("revalue_job_done", job_id=job_id)


async def mark_job_failed(session: AsyncSession, job_id: int, error: str) -> None:
    await session.execute(
        update(RevalueJob)
        .where(RevalueJob.id == job_id)
        .values(
            status=JobStatus.FAILED.value,
            finished_at=datetime.now(timezone.utc),
            error=(error or "unknown error")[:MAX_ERROR_LENGTH],
        )
    )
    logger.warning("revalue_job_failed", job_id=job_id, error=error)


async def fail_stale_jobs(
    session: AsyncSession,
    older_than: timedelta | None = None,
    now: datetime | None = None,
) -> int:
    """
    Fail running jobs whose worker has evidently died.

    A job running longer than REVALUE_STALE_JOB_MINUTES (or `older_than`)
    would otherwise hold the user's active slot forever and block every
    future enqueue for that user.

    Returns:
        Number of jobs failed.
    """
    if older_than is None:
        older_than = timedelta(minutes=settings.REVALUE_STALE_JOB_MINUTES)
    now = now or datetime.now(timezone.utc)
    cutoff = now - older_than

    result = await session.execute(
        update(RevalueJob)
        .where(RevalueJob.status == JobStatus.RUNNING.value)
        .where(RevalueJob.started_at < cutoff)
        .values(
            status=JobStatus.FAILED.value,
            finished_at=now,
            error=f"stale: running longer than {older_than}",
        )
    )
    failed = result.rowcount or 0
    if failed:
        logger.warning("revalue_stale_jobs_failed", count=failed, cutoff=cutoff.isoformat())
    return failed
