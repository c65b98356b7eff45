"""Schedule command: run announcements as a daemon."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from files_announce.cli.utils import (
    catalog_option,
    destinations_argument,
    display,
    logger,
    message_dir_option,
    options_location,
    options_path_option,
    stat_store_option,
    webhook_option,
)

schedule_app = typer.Typer(help="Run announcements on a schedule")


@schedule_app.command(name="start")
def schedule_start(
    destinations: List[str] = destinations_argument(),
    hour: int = typer.Option(
        3, "--hour", "-H", min=0, max=23, help="Hour to announce (0-23)"
    ),
    minute: int = typer.Option(
        30, "--minute", "-M", min=0, max=59, help="Minute to announce (0-59)"
    ),
    every: Optional[int] = typer.Option(
        None,
        "--every",
        min=1,
        help="Announce every N minutes instead of once a day",
    ),
    timezone: str = typer.Option("UTC", "--timezone", help="Timezone of the schedule"),
    options_path: Optional[Path] = options_path_option(),
    catalog_path: Path = catalog_option(),
    stat_store_path: Path = stat_store_option(),
    message_dir: Path = message_dir_option(),
    webhook_url: Optional[str] = webhook_option(),
):
    """Start the announcement daemon. Press Ctrl+C to stop.

    Examples:
        # Daily at 3:30 AM UTC to one message area
        files-announce schedule start fsx_bot

        # 6:00 AM local time to two areas
        files-announce schedule start fsx_bot,general -H 6 -M 0 --timezone Europe/Berlin

        # Hourly
        files-announce schedule start fsx_bot --every 60
    """
    from files_announce.scheduling import AnnounceScheduler, LatestFilesAnnounceJob

    job = LatestFilesAnnounceJob(
        destinations,
        options_location=options_location(options_path),
        catalog_path=catalog_path,
        stat_store_path=stat_store_path,
        message_dir=message_dir,
        webhook_url=webhook_url,
    )

    async def _serve() -> None:
        scheduler = AnnounceScheduler(timezone=timezone)
        if every:
            scheduler.schedule_every(job, minutes=every)
            display(f"Announcing every {every} minutes")
        else:
            scheduler.schedule_daily(job, hour=hour, minute=minute)
            display(f"Announcing daily at {hour:02d}:{minute:02d} {timezone}")
        await scheduler.run_forever()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        display("\nScheduler stopped.", "warning")
    except Exception as e:
        logger.exception("scheduler_failed")
        display(f"Scheduler failed: {e}", "error")
        raise typer.Exit(code=1)
