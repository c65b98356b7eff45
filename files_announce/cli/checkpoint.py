"""Checkpoint commands: inspect or move the announcement watermark."""

from pathlib import Path

import typer

from files_announce.cli.utils import display, handle_errors, stat_store_option
from files_announce.models.checkpoint import parse_timestamp
from files_announce.services.checkpoint_service import (
    CheckpointService,
    JsonFileStatStore,
)

checkpoint_app = typer.Typer(help="Inspect or change the last-run checkpoint")


def _service(stat_store_path: Path) -> CheckpointService:
    return CheckpointService(JsonFileStatStore(stat_store_path))


@checkpoint_app.command(name="show")
@handle_errors
def checkpoint_show(stat_store_path: Path = stat_store_option()):
    """Show the last run timestamp."""
    last = _service(stat_store_path).get_last()
    if last is None:
        display("Checkpoint not set; the next run will initialize it.", "warning")
    else:
        display(f"Last run: {last.isoformat()}")


@checkpoint_app.command(name="set")
@handle_errors
def checkpoint_set(
    timestamp: str = typer.Argument(..., help="ISO-8601 timestamp"),
    stat_store_path: Path = stat_store_option(),
):
    """Set the last run timestamp, e.g. to re-announce a window."""
    try:
        ts = parse_timestamp(timestamp)
    except ValueError:
        display(f"Not an ISO-8601 timestamp: {timestamp}", "error")
        raise typer.Exit(code=1)

    _service(stat_store_path).set_last(ts)
    display(f"Checkpoint set to {ts.isoformat()}", "success")


@checkpoint_app.command(name="clear")
@handle_errors
def checkpoint_clear(stat_store_path: Path = stat_store_option()):
    """Forget the checkpoint; the next run only initializes it."""
    _service(stat_store_path).clear()
    display("Checkpoint cleared.", "success")
