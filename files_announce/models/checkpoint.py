"""Data models for the announcement checkpoint."""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

# Stat key under which the last run timestamp is kept
STAT_KEY_LAST_TS = "latest_files_announce_evt__last_timestamp"


class StatDocument(BaseModel):
    """On-disk layout of a file backed stat store"""

    model_config = ConfigDict(protected_namespaces=())

    version: str = "1.0"
    stats: Dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing ``Z`` and naive values mean UTC.

    Raises:
        ValueError: If the value is not ISO-8601
    """
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
