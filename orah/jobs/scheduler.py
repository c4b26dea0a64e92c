"""In-process scheduler for the recurring enrollment jobs.

Jobs:
- deadline_sweep: daily, marks untouched enrollments as missed
- lesson_reminders: weekly, reminds students about unfinished lessons
- outbox_drain: every minute, redelivers queued side effects

Every API worker runs a scheduler. A non-blocking Redis lock per job makes
sure only one of them executes a given run; without Redis each worker runs
its own, which is safe because all three jobs are idempotent per record.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from orah.config.settings import Settings
from orah.core.context import JobContext
from orah.core.redis import job_lock
from orah.notifications.service import OutboxService

from .deadline_sweep import DeadlineSweep
from .reminders import ReminderSweep


logger = structlog.get_logger(__name__)

DEADLINE_SWEEP_JOB = "deadline_sweep"
REMINDER_JOB = "lesson_reminders"
OUTBOX_DRAIN_JOB = "outbox_drain"


class JobScheduler:
    """Registers the enrollment jobs on an ``AsyncIOScheduler``."""

    def __init__(
        self,
        settings: Settings,
        deadline_sweep: DeadlineSweep,
        reminder_sweep: ReminderSweep,
        outbox: OutboxService,
        redis_client: redis.Redis | None = None,
    ):
        self.settings = settings
        self.deadline_sweep = deadline_sweep
        self.reminder_sweep = reminder_sweep
        self.outbox = outbox
        self.redis_client = redis_client
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register all jobs and start the scheduler (idempotent)."""
        if self.running:
            return

        timezone = self.settings.scheduler_timezone
        scheduler = AsyncIOScheduler(timezone=timezone)

        self._add(
            scheduler,
            DEADLINE_SWEEP_JOB,
            CronTrigger.from_crontab(
                self.settings.deadline_sweep_cron, timezone=timezone
            ),
            self.run_deadline_sweep,
        )
        self._add(
            scheduler,
            REMINDER_JOB,
            CronTrigger.from_crontab(self.settings.reminder_cron, timezone=timezone),
            self.run_reminders,
        )
        self._add(
            scheduler,
            OUTBOX_DRAIN_JOB,
            IntervalTrigger(
                seconds=self.settings.outbox_drain_interval_seconds,
                timezone=timezone,
            ),
            self.run_outbox_drain,
        )

        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "scheduler_started",
            jobs=[job.id for job in scheduler.get_jobs()],
            timezone=timezone,
        )

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")

    @staticmethod
    def _add(
        scheduler: AsyncIOScheduler,
        job_id: str,
        trigger: Any,
        func: Callable[[], Awaitable[Any]],
    ) -> None:
        scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    # ==========================================================================
    # Job Runs
    # ==========================================================================

    async def run_deadline_sweep(self) -> None:
        await self._run_guarded(DEADLINE_SWEEP_JOB, self.deadline_sweep.run)

    async def run_reminders(self) -> None:
        await self._run_guarded(REMINDER_JOB, self.reminder_sweep.run)

    async def run_outbox_drain(self) -> None:
        await self._run_guarded(
            OUTBOX_DRAIN_JOB,
            lambda: self.outbox.drain(self.settings.outbox_drain_batch_size),
        )

    async def _run_guarded(
        self, job: str, func: Callable[[], Awaitable[Any]]
    ) -> None:
        """Run a job under its lock and logging context.

        Exceptions are logged here: APScheduler would only print them.
        """
        with JobContext(job):
            try:
                async with job_lock(
                    self.redis_client, job, self.settings.job_lock_ttl_seconds
                ) as acquired:
                    if not acquired:
                        return
                    await func()
            except Exception:
                logger.exception("scheduled_job_failed")
