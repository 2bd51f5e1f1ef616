"""Scheduled review sync jobs.

Four recurring jobs run on an APScheduler AsyncIOScheduler inside the API
process:

    daily_review_sync     cron, once a day at daily_sync_hour (UTC)
    hourly_queue_refill   cron, at minute 0 of every hour
    process_queue         interval, every queue_process_interval_minutes
    clear_stuck           interval, every 10 minutes

Jobs are defined in code, so nothing needs to be persisted across restarts.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from localdirectory.config.settings import Settings, get_settings
from localdirectory.sync.processor import ReviewSyncProcessor

logger = structlog.get_logger(__name__)

JOB_TIMEOUT_SECONDS = 1800
CLEAR_STUCK_INTERVAL_MINUTES = 10


class SyncScheduler:
    """Runs the review sync jobs on a schedule.

    Example:
        scheduler = SyncScheduler(ReviewSyncProcessor(store))
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, processor: ReviewSyncProcessor, settings: Optional[Settings] = None):
        self._processor = processor
        self._settings = settings or get_settings()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is currently running."""
        return self._is_running

    async def start(self) -> None:
        """Start the scheduler and register every job."""
        if self._is_running:
            logger.warning("scheduler_already_running")
            return

        logger.info("scheduler_starting")
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._add_jobs()
        self._scheduler.start()
        self._is_running = True
        logger.info("scheduler_started", jobs=len(self._scheduler.get_jobs()))

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._is_running:
            logger.warning("scheduler_not_running")
            return

        logger.info("scheduler_stopping")
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._is_running = False
        logger.info("scheduler_stopped")

    def _add_jobs(self) -> None:
        processor = self._processor
        self._add_job(
            "daily_review_sync",
            processor.daily_review_sync,
            CronTrigger(hour=self._settings.daily_sync_hour, minute=0, timezone="UTC"),
        )
        self._add_job(
            "hourly_queue_refill",
            processor.hourly_queue_refill,
            CronTrigger(minute=0, timezone="UTC"),
        )
        self._add_job(
            "process_queue",
            processor.process_queue,
            IntervalTrigger(minutes=self._settings.queue_process_interval_minutes),
        )
        self._add_job(
            "clear_stuck",
            self._clear_stuck,
            IntervalTrigger(minutes=CLEAR_STUCK_INTERVAL_MINUTES),
        )

    def _add_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        trigger: Any,
    ) -> None:
        self._scheduler.add_job(
            self._execute_job,
            trigger=trigger,
            id=job_id,
            args=[job_id, func],
            name=f"Review sync: {job_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("job_added_to_scheduler", job_id=job_id, trigger=str(trigger))

    async def _clear_stuck(self) -> int:
        return self._processor.clear_stuck()

    async def _execute_job(self, job_id: str, func: Callable[[], Awaitable[Any]]) -> Any:
        """Run one job with timeout protection, re-raising failures for APScheduler."""
        logger.info("job_execution_start", job_id=job_id)
        try:
            async with asyncio.timeout(JOB_TIMEOUT_SECONDS):
                result = await func()
        except asyncio.TimeoutError:
            logger.error("job_execution_timeout", job_id=job_id, timeout_seconds=JOB_TIMEOUT_SECONDS)
            raise
        except Exception as e:
            logger.error(
                "job_execution_failed",
                job_id=job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info("job_execution_complete", job_id=job_id)
        return result

    def list_jobs(self) -> list[dict[str, Optional[str]]]:
        """Registered jobs with their next run time."""
        if not self._scheduler:
            return []
        return [
            {
                "id": job.id,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self._scheduler.get_jobs()
        ]

    async def run_now(self, job_id: str) -> Any:
        jobs = {
            "daily_review_sync": self._processor.daily_review_sync,
            "hourly_queue_refill": self._processor.hourly_queue_refill,
            "process_queue": self._processor.process_queue,
            "clear_stuck": self._clear_stuck,
        }
        if job_id not in jobs:
            raise KeyError(job_id)
        return await self._execute_job(job_id, jobs[job_id])
