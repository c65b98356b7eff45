"""Observability: run ids, structured logging and metrics.

Usage:
    from files_announce.observability import configure_from_env, correlation_id_context

    configure_from_env()
    with correlation_id_context():
        ...
"""

from files_announce.observability.context import (
    clear_correlation_id,
    correlation_id_context,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
)
from files_announce.observability.logging import (
    add_correlation_id_processor,
    bind_context,
    clear_context,
    configure_from_env,
    configure_logging,
)
from files_announce.observability.metrics import (
    ANNOUNCE_RUNS,
    AREAS_SCANNED,
    BYTES_ANNOUNCED,
    FILES_ANNOUNCED,
    MESSAGES_DELIVERED,
    RUN_DURATION,
    get_metrics_text,
)

__all__ = [
    "new_correlation_id",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    "configure_logging",
    "configure_from_env",
    "bind_context",
    "clear_context",
    "add_correlation_id_processor",
    "ANNOUNCE_RUNS",
    "AREAS_SCANNED",
    "BYTES_ANNOUNCED",
    "FILES_ANNOUNCED",
    "MESSAGES_DELIVERED",
    "RUN_DURATION",
    "get_metrics_text",
]
