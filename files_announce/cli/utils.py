"""Helpers shared by the CLI commands: options, output and error handling."""

import asyncio
import functools
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
import typer

from files_announce.models.options import AnnounceOptions
from files_announce.observability.context import (
    correlation_id_context,
    new_correlation_id,
)
from files_announce.observability.logging import configure_from_env
from files_announce.services.config_manager import OptionsManager
from files_announce.utils.exceptions import AnnounceError

configure_from_env()
logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)
T = TypeVar("T")

DEFAULT_CATALOG = Path("data/catalog.json")
DEFAULT_STAT_STORE = Path("data/stats.json")
DEFAULT_MESSAGE_DIR = Path("data/messages")

_COLORS = {
    "success": typer.colors.GREEN,
    "warning": typer.colors.YELLOW,
    "error": typer.colors.RED,
    "info": typer.colors.CYAN,
}


def display(message: str, kind: str = "info") -> None:
    """Print a coloured status line; ``kind`` picks the colour."""
    typer.secho(message, fg=_COLORS.get(kind))


def options_path_option() -> Any:
    return typer.Option(None, "--options", "-o", help="Path to options YAML")


def stat_store_option() -> Any:
    return typer.Option(
        DEFAULT_STAT_STORE,
        "--stat-store",
        help="Stat store JSON holding the checkpoint",
    )


def catalog_option() -> Any:
    return typer.Option(DEFAULT_CATALOG, "--catalog", help="File catalog JSON")


def message_dir_option() -> Any:
    return typer.Option(
        DEFAULT_MESSAGE_DIR, "--message-dir", help="Message area directory"
    )


def webhook_option() -> Any:
    return typer.Option(
        None,
        "--webhook-url",
        envvar="ANNOUNCE_WEBHOOK_URL",
        help="Post messages to this URL instead of the message directory",
    )


def destinations_argument() -> Any:
    return typer.Argument(
        ..., help="Message area tag(s) to post to; comma separated lists allowed"
    )


def options_location(options_path: Optional[Path]) -> Optional[str]:
    return str(options_path) if options_path else None


def load_options(options_path: Optional[Path]) -> AnnounceOptions:
    """Load options, exiting with code 1 if they are malformed."""
    manager = OptionsManager(options_location(options_path))
    try:
        return manager.load_options()
    except AnnounceError as e:
        display(f"Configuration Error: {e}", "error")
        raise typer.Exit(code=1)


def run_async(command: str, coro: Awaitable[T]) -> T:
    """Run one command's coroutine under its own run id."""

    async def _scoped() -> T:
        with correlation_id_context(new_correlation_id(f"cli-{command}")):
            return await coro

    return asyncio.run(_scoped())


def handle_errors(func: F) -> F:
    """Report failures of a command as one red line and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except AnnounceError as e:
            logger.error("command_failed", error_type=type(e).__name__, error=str(e))
            display(f"Error: {e}", "error")
            raise typer.Exit(code=1)
        except Exception as e:
            logger.exception("command_crashed", command=func.__name__)
            display(f"Error: {e}", "error")
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]
