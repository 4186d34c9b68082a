"""
TCG Value — Revaluation Worker

Long-running loop that drains user_revalue_jobs and runs the scheduled full
revaluation:

- Per-user jobs: claim oldest queued → run_for_user → done | failed.
- Full run: every FULL_REVALUE_INTERVAL_HOURS (0 disables).
- Stale jobs: running rows older than REVALUE_STALE_JOB_MINUTES are failed
  so the user's active slot is released.

Job state changes are committed in their own short sessions, separate from
the valuation transaction, so a failed valuation still records `failed`.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgvalue.config import settings
from tcgvalue.pipeline.jobs import claim_next_job, fail_stale_jobs, mark_job_done, mark_job_failed
from tcgvalue.pipeline.live_prices import LivePriceClient, LivePriceLookup
from tcgvalue.pipeline.revalue import RevaluationPipeline

logger = structlog.get_logger(__name__)


class RevalueWorker:
    """
    Async worker for revaluation jobs.

    Maintains its own clock for the scheduled full run. One job is processed
    at a time; several workers may run against the same database.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pipeline: RevaluationPipeline | None = None,
        live_lookup: LivePriceLookup | None = None,
        sleep_seconds: float | None = None,
    ):
        self.session_factory = session_factory
        self.pipeline = pipeline or RevaluationPipeline(session_factory, live_lookup=live_lookup)
        self.sleep_seconds = (
            sleep_seconds if sleep_seconds is not None else settings.REVALUE_WORKER_SLEEP_SECONDS
        )
        self._shutdown_event = asyncio.Event()

        self._full_last_run: datetime | None = None
        self._full_cadence_hours = settings.FULL_REVALUE_INTERVAL_HOURS

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the worker loop."""
        logger.info("worker_shutdown_requested")
        self._shutdown_event.set()

    def _should_run_full(self) -> bool:
        """Check if the full revaluation window has elapsed."""
        if self._full_cadence_hours <= 0:
            return False
        if self._full_last_run is None:
            return True
        elapsed_hours = (datetime.now(timezone.utc) - self._full_last_run).total_seconds() / 3600
        return elapsed_hours >= self._full_cadence_hours

    async def _run_full(self) -> None:
        # Clock advances even on failure; the next attempt waits a full cadence.
        self._full_last_run = datetime.now(timezone.utc)
        result = await self.pipeline.run_full()
        logger.info("worker_full_revalue_complete", **result.as_dict())

    async def release_stale_jobs(self) -> int:
        async with self.session_factory() as session:
            failed = await fail_stale_jobs(session)
            await session.commit()
        return failed

    async def process_next_job(self) -> bool:
        """
        Claim and run one job.

        Returns:
            True if a job was processed (successfully or not), False if the
            queue was empty.
        """
        async with self.session_factory() as session:
            job = await claim_next_job(session)
            if job is None:
                return False
            job_id, user_id = job.id, job.user_id
            await session.commit()

        try:
            result = await self.pipeline.run_for_user(user_id)
        except Exception as e:
            logger.error(
                "worker_job_failed",
                job_id=job_id,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            async with self.session_factory() as session:
                await mark_job_failed(session, job_id, f"{type(e).__name__}: {e}")
                await session.commit()
            return True

        async with self.session_factory() as session:
            await mark_job_done(session, job_id)
            await session.commit()

        logger.info("worker_job_complete", job_id=job_id, **result.as_dict())
        return True

    async def run(self) -> None:
        """
        Main worker loop. Runs until shutdown is signaled.

        Drains the queue back-to-back; sleeps only when it is empty.
        """
        logger.info(
            "worker_started",
            sleep_seconds=self.sleep_seconds,
            full_cadence_hours=self._full_cadence_hours,
        )

        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.release_stale_jobs()

                    if self._should_run_full():
                        await self._run_full()

                    if await self.process_next_job():
                        continue

                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.sleep_seconds,
                    )
                except asyncio.TimeoutError:
                    # Expected: no shutdown signal during the sleep
                    continue
                except Exception as e:
                    logger.error(
                        "worker_unknown_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    await asyncio.sleep(self.sleep_seconds)

        except asyncio.CancelledError:
            logger.info("worker_cancelled")
            raise
        finally:
            logger.info("worker_stopped")


async def run_worker(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Run the worker with a live price client and graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.
    """
    async with LivePriceClient() as live_client:
        worker = RevalueWorker(session_factory, live_lookup=live_client)

        def handle_signal(_signum: int, _frame: Any) -> None:
            logger.info("worker_signal_received")
            asyncio.create_task(worker.shutdown())

        loop = asyncio.get_running_loop()

        try:
            loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
            loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
        except NotImplementedError:
            logger.warning("signal_handlers_not_supported_on_platform")

        try:
            await worker.run()
        except Exception as e:
            logger.error("worker_fatal_error", error=str(e), error_type=type(e).__name__)
            raise
