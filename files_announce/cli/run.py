"""Run command: one announcement run."""

from pathlib import Path
from typing import List, Optional

import typer

from files_announce.cli.utils import (
    catalog_option,
    destinations_argument,
    display,
    handle_errors,
    message_dir_option,
    options_location,
    options_path_option,
    run_async,
    stat_store_option,
    webhook_option,
)
from files_announce.orchestration import AnnounceResult, build_pipeline
from files_announce.utils.exceptions import NotInitializedError


@handle_errors
def run_command(
    destinations: List[str] = destinations_argument(),
    options_path: Optional[Path] = options_path_option(),
    catalog_path: Path = catalog_option(),
    stat_store_path: Path = stat_store_option(),
    message_dir: Path = message_dir_option(),
    webhook_url: Optional[str] = webhook_option(),
):
    """Announce files added since the last run."""
    pipeline = build_pipeline(
        destinations,
        options_location=options_location(options_path),
        catalog_path=catalog_path,
        stat_store_path=stat_store_path,
        message_dir=message_dir,
        webhook_url=webhook_url,
    )

    try:
        result = run_async("run", pipeline.run())
    except NotInitializedError as e:
        display(f"{e}. Nothing announced this time.", "warning")
        return

    _report(result)


def _report(result: AnnounceResult) -> None:
    display(f"Window: {result.since.isoformat()} .. {result.now.isoformat()}")
    typer.echo(f"Areas scanned: {result.areas_scanned}")

    if not result.delivered:
        display("No new files; nothing posted.", "warning")
        return

    typer.echo(
        f"Files: {result.total_file_count} "
        f"({result.total_file_bytes} bytes, {result.remaining_files} not listed)"
    )
    display(
        f"Posted '{result.subject}' to: {', '.join(result.delivered_to)}", "success"
    )
