"""Structured logging for announcement runs.

structlog is configured once per process, by the CLI on import or by the
scheduler daemon. Modules log snake_case events through a module-level
``structlog.get_logger()``; each entry carries the run id and whatever the
pipeline bound with ``bind_context`` (the scan window, for instance).

Environment:
    ANNOUNCE_LOG_LEVEL  DEBUG, INFO (default), WARNING or ERROR
    ANNOUNCE_LOG_JSON   "0" for coloured console output; JSON lines otherwise
"""

import logging
import os
import sys
from typing import Any, List, Mapping, Optional, TextIO

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from files_announce.observability.context import get_correlation_id

LOG_LEVEL_ENV = "ANNOUNCE_LOG_LEVEL"
LOG_JSON_ENV = "ANNOUNCE_LOG_JSON"


def add_correlation_id_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Stamp the current run id on the entry ("none" outside a run)."""
    event_dict["correlation_id"] = get_correlation_id() or "none"
    return event_dict


def _processors(json_output: bool, add_timestamp: bool) -> List[Processor]:
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id_processor,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    if json_output:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    add_timestamp: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name; unknown names fall back to INFO
        json_output: JSON lines when True, console output otherwise
        add_timestamp: Add a UTC ISO timestamp to each entry
        stream: Destination of log lines, stderr by default
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=_processors(json_output, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def configure_from_env(environ: Optional[Mapping[str, str]] = None) -> None:
    """Configure logging from ANNOUNCE_LOG_LEVEL and ANNOUNCE_LOG_JSON."""
    env = os.environ if environ is None else environ
    configure_logging(
        level=env.get(LOG_LEVEL_ENV, "INFO"),
        json_output=env.get(LOG_JSON_ENV, "1") != "0",
    )


def bind_context(**context: Any) -> None:
    """Add fields to every later entry of the current run."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
