"""
Checkpoint service for incremental announcement runs.

Keeps the single "last run" timestamp that defines which files count as
new. The value lives in a process-wide key/value stat store; the file
backed store uses atomic writes so a concurrent reader never sees a
partially written document.
"""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from files_announce.models.checkpoint import (
    STAT_KEY_LAST_TS,
    StatDocument,
    parse_timestamp,
)

logger = structlog.get_logger()


class StatStore(ABC):
    """Process-wide key/value store for system stats"""

    @abstractmethod
    def get_system_stat(self, key: str) -> Optional[Any]:
        """Return the stored value or None if never set"""
        pass

    @abstractmethod
    def set_system_stat(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one"""
        pass


class InMemoryStatStore(StatStore):
    """Stat store kept in process memory"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._stats: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get_system_stat(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._stats.get(key)

    def set_system_stat(self, key: str, value: Any) -> None:
        with self._lock:
            self._stats[key] = value


class JsonFileStatStore(StatStore):
    """
    Stat store persisted as a single JSON document.

    Every write goes to a temp file that is then renamed over the target,
    so the value is durable when set_system_stat returns.
    """

    def __init__(self, path: Path):
        """
        Initialize file backed stat store.

        Args:
            path: Location of the JSON stats document
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def get_system_stat(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._load().stats.get(key)

    def set_system_stat(self, key: str, value: Any) -> None:
        with self._lock:
            document = self._load()
            document.stats[key] = value
            document.last_updated = datetime.now(timezone.utc)
            self._save(document)

        logger.debug("stat_saved", key=key, path=str(self.path))

    def _load(self) -> StatDocument:
        if not self.path.exists():
            return StatDocument()

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return StatDocument(**data)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error("stat_store_load_error", path=str(self.path), error=str(e))
            return StatDocument()

    def _save(self, document: StatDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: write to temp file, then rename
        temp_file = self.path.with_suffix(".tmp")
        try:
            with open(temp_file, "w") as f:
                json.dump(document.model_dump(mode="json"), f, indent=2)
            temp_file.replace(self.path)
        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise


class CheckpointService:
    """
    Read and advance the announcement watermark.

    The pipeline reads the value once per run and keeps it locally, so a
    set_last later in the same run never changes that run's window.
    """

    def __init__(self, store: StatStore, key: str = STAT_KEY_LAST_TS):
        """
        Initialize checkpoint service.

        Args:
            store: Stat store holding the timestamp
            key: Stat key of the timestamp
        """
        self.store = store
        self.key = key

    def get_last(self) -> Optional[datetime]:
        """
        Get the last run timestamp.

        Returns:
            Timezone aware timestamp, or None on the first ever run
        """
        raw = self.store.get_system_stat(self.key)
        if not raw:
            logger.debug("no_checkpoint_found", key=self.key)
            return None

        try:
            return parse_timestamp(str(raw))
        except ValueError:
            logger.warning("checkpoint_unparseable", key=self.key, value=str(raw))
            return None

    def set_last(self, ts: datetime) -> None:
        """
        Overwrite the last run timestamp.

        Args:
            ts: New watermark; naive values are taken to be UTC
        """
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)

        self.store.set_system_stat(self.key, ts.isoformat())
        logger.info("checkpoint_saved", key=self.key, timestamp=ts.isoformat())

    def clear(self) -> None:
        """Forget the watermark; the next run bootstraps again"""
        self.store.set_system_stat(self.key, None)
        logger.info("checkpoint_cleared", key=self.key)
