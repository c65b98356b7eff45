"""The scheduled "latest files" announcement job.

Usage:
    from files_announce.scheduling.jobs import LatestFilesAnnounceJob

    job = LatestFilesAnnounceJob(["fsx_bot"], options_location="announce_options.yaml")
    outcome = await job()
"""

import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import structlog

from files_announce.observability.context import (
    correlation_id_context,
    new_correlation_id,
)
from files_announce.observability.logging import clear_context
from files_announce.utils.exceptions import NotInitializedError

logger = structlog.get_logger()


@dataclass
class JobStats:
    """Counters kept across runs of one job instance"""

    runs: int = 0
    failures: int = 0
    last_started: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.last_started:
            data["last_started"] = self.last_started.isoformat()
        return data


class LatestFilesAnnounceJob:
    """Callable handed to the scheduler.

    Each call wires a fresh pipeline, so edits to options, templates or the
    catalog export are picked up without restarting the daemon. The first
    ever run only initializes the checkpoint and is reported with status
    ``initialized``, not as a failure.
    """

    name = "latest_files_announce"

    def __init__(
        self,
        destinations: Sequence[str],
        options_location: Optional[str] = None,
        catalog_path: Path = Path("data/catalog.json"),
        stat_store_path: Path = Path("data/stats.json"),
        message_dir: Path = Path("data/messages"),
        webhook_url: Optional[str] = None,
    ):
        self.destinations = list(destinations)
        self.options_location = options_location
        self.catalog_path = catalog_path
        self.stat_store_path = stat_store_path
        self.message_dir = message_dir
        self.webhook_url = webhook_url
        self.stats = JobStats()

    async def __call__(self) -> Dict[str, Any]:
        """Run once under a fresh run id.

        Returns:
            Outcome with ``status`` initialized, delivered or no_new_files

        Raises:
            Exception: Whatever the pipeline raised, after it is counted
        """
        start = time.monotonic()
        self.stats.runs += 1
        self.stats.last_started = datetime.now(timezone.utc)

        with correlation_id_context(new_correlation_id(self.name)) as run_id:
            logger.info(
                "announce_job_started", run_id=run_id, destinations=self.destinations
            )
            try:
                outcome = await self.run()
            except Exception as e:
                self.stats.failures += 1
                self.stats.last_status = "failed"
                self.stats.last_error = str(e)
                logger.error(
                    "announce_job_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
                raise
            else:
                self.stats.last_status = outcome["status"]
                self.stats.last_error = None
                logger.info(
                    "announce_job_finished",
                    status=outcome["status"],
                    duration_seconds=round(time.monotonic() - start, 2),
                )
                return outcome
            finally:
                clear_context()

    async def run(self) -> Dict[str, Any]:
        from files_announce.orchestration import build_pipeline

        pipeline = build_pipeline(
            self.destinations,
            options_location=self.options_location,
            catalog_path=self.catalog_path,
            stat_store_path=self.stat_store_path,
            message_dir=self.message_dir,
            webhook_url=self.webhook_url,
        )

        try:
            result = await pipeline.run()
        except NotInitializedError as e:
            logger.info("announce_checkpoint_initialized", message=str(e))
            return {"status": "initialized"}

        status = "delivered" if result.delivered else "no_new_files"
        return {"status": status, **result.to_dict()}
