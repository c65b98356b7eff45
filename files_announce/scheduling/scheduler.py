"""Run announcement jobs on a schedule.

One AsyncIOScheduler drives the jobs. Runs of the same job never overlap
(``max_instances=1``): the checkpoint read-then-write is not locked and
relies on that. Missed runs are coalesced, so a board that was down
overnight posts one bulletin covering the whole gap.

Usage:
    scheduler = AnnounceScheduler(timezone="Europe/Berlin")
    scheduler.schedule_daily(LatestFilesAnnounceJob(["fsx_bot"]), hour=3, minute=30)
    await scheduler.run_forever()
"""

import asyncio
import signal
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()

JobFunc = Callable[[], Awaitable[Any]]


def _next_run(job: Any) -> Optional[str]:
    # Pending jobs (scheduler not started) have no next_run_time yet
    next_run = getattr(job, "next_run_time", None)
    return next_run.isoformat() if next_run else None


class AnnounceScheduler:
    """Daily or interval triggers for announcement jobs."""

    def __init__(self, timezone: str = "UTC", misfire_grace_time: int = 3600):
        """Initialize scheduler.

        Args:
            timezone: Timezone the daily time is given in
            misfire_grace_time: Seconds a late run may still start
        """
        self.timezone = timezone
        self.scheduler = AsyncIOScheduler(
            timezone=timezone,
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": misfire_grace_time,
            },
        )
        self.scheduler.add_listener(
            self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
        )
        self._stopped = asyncio.Event()
        self._running = False

    def schedule_daily(
        self, job: JobFunc, hour: int, minute: int, job_id: Optional[str] = None
    ) -> str:
        """Run ``job`` every day at ``hour:minute``; returns the job id."""
        trigger = CronTrigger(hour=hour, minute=minute, timezone=self.timezone)
        return self._add(job, trigger, job_id, f"daily {hour:02d}:{minute:02d}")

    def schedule_every(
        self, job: JobFunc, minutes: int, job_id: Optional[str] = None
    ) -> str:
        """Run ``job`` every ``minutes`` minutes; returns the job id."""
        if minutes < 1:
            raise ValueError(f"Interval must be at least 1 minute, got {minutes}")
        trigger = IntervalTrigger(minutes=minutes, timezone=self.timezone)
        return self._add(job, trigger, job_id, f"every {minutes} min")

    def _add(
        self,
        job: JobFunc,
        trigger: BaseTrigger,
        job_id: Optional[str],
        schedule: str,
    ) -> str:
        job_id = job_id or getattr(job, "name", None) or "announce"
        # replace_existing is not applied to pending jobs before start()
        if self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)
        added = self.scheduler.add_job(
            job, trigger=trigger, id=job_id, name=job_id, replace_existing=True
        )
        logger.info(
            "announce_job_scheduled",
            job_id=job_id,
            schedule=schedule,
            timezone=self.timezone,
            next_run=_next_run(added),
        )
        return job_id

    def unschedule(self, job_id: str) -> bool:
        """Remove a job; False if no such job was scheduled."""
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("announce_job_not_found", job_id=job_id)
            return False

        logger.info("announce_job_unscheduled", job_id=job_id)
        return True

    def get_jobs(self) -> List[Dict[str, Optional[str]]]:
        return [
            {"id": job.id, "next_run_time": _next_run(job)}
            for job in self.scheduler.get_jobs()
        ]

    async def run_forever(self) -> None:  # pragma: no cover (blocks until signal)
        """Start the scheduler and wait for SIGINT or SIGTERM."""
        if self._running:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig, lambda: asyncio.ensure_future(self.shutdown())
            )

        self._stopped.clear()
        self.scheduler.start()
        self._running = True
        logger.info("scheduler_started", jobs=self.get_jobs())

        await self._stopped.wait()

    async def shutdown(self, wait: bool = True) -> None:
        """Stop the scheduler and release ``run_forever``."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=wait)
        self._running = False
        self._stopped.set()
        logger.info("scheduler_stopped")

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        fields = {
            "job_id": event.job_id,
            "scheduled_run_time": str(event.scheduled_run_time),
        }
        if event.code == EVENT_JOB_ERROR:
            logger.error("scheduled_run_failed", error=str(event.exception), **fields)
        elif event.code == EVENT_JOB_MISSED:
            logger.warning("scheduled_run_missed", **fields)
        else:
            logger.info("scheduled_run_executed", **fields)

    @property
    def is_running(self) -> bool:
        return self._running
