"""Run ids for tracing one announcement run through the logs.

Every run, whether started from the CLI or by the scheduler, gets an id
such as ``latest_files_announce-20261017T033000Z-1f3a9c2e``. The id is kept
in a ContextVar, so the concurrent catalog loads of the run see it too,
and the logging processor stamps it on every entry.

Usage:
    from files_announce.observability.context import (
        correlation_id_context,
        new_correlation_id,
    )

    with correlation_id_context(new_correlation_id("cli-run")):
        asyncio.run(pipeline.run())
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

DEFAULT_PREFIX = "announce"

_correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def new_correlation_id(
    prefix: str = DEFAULT_PREFIX, now: Optional[datetime] = None
) -> str:
    """Build a run id from a prefix, the UTC start time and a random suffix."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8]}"


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set the run id for the current context, generating one if omitted."""
    corr_id = corr_id or new_correlation_id()
    _correlation_id_var.set(corr_id)
    return corr_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


@contextmanager
def correlation_id_context(corr_id: Optional[str] = None) -> Iterator[str]:
    """Scope a run id to a block; the outer id is restored on exit."""
    token = _correlation_id_var.set(corr_id or new_correlation_id())
    try:
        yield _correlation_id_var.get() or ""
    finally:
        _correlation_id_var.reset(token)
