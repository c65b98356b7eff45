"""files-announce CLI package.

Usage:
    files-announce run fsx_bot --options announce_options.yaml
    files-announce validate --options announce_options.yaml
    files-announce checkpoint show
    files-announce schedule start fsx_bot --hour 3 --minute 30
"""

import typer

from files_announce.cli.checkpoint import checkpoint_app
from files_announce.cli.run import run_command
from files_announce.cli.schedule import schedule_app
from files_announce.cli.validate import validate_command

app = typer.Typer(help="Announce newly uploaded files to message areas")

app.command(name="run")(run_command)
app.command(name="validate")(validate_command)

app.add_typer(checkpoint_app, name="checkpoint")
app.add_typer(schedule_app, name="schedule")

__all__ = ["app", "run_command", "validate_command", "checkpoint_app", "schedule_app"]
