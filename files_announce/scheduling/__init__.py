"""Scheduling of announcement runs.

Usage:
    from files_announce.scheduling import AnnounceScheduler, LatestFilesAnnounceJob

    scheduler = AnnounceScheduler()
    scheduler.schedule_daily(LatestFilesAnnounceJob(["fsx_bot"]), hour=3, minute=30)
    await scheduler.run_forever()
"""

from files_announce.scheduling.jobs import JobStats, LatestFilesAnnounceJob
from files_announce.scheduling.scheduler import AnnounceScheduler

__all__ = ["AnnounceScheduler", "JobStats", "LatestFilesAnnounceJob"]
