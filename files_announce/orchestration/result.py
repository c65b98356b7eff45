"""Announcement run result."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class AnnounceResult:
    """Outcome of one announcement run.

    ``delivered_to`` is empty when no new files were found; that is a
    successful run, not an error.
    """

    since: datetime
    now: datetime
    areas_scanned: int = 0
    areas_with_files: int = 0
    total_file_count: int = 0
    total_file_bytes: int = 0
    remaining_files: int = 0
    report_bytes: int = 0
    subject: Optional[str] = None
    report_text: str = ""
    delivered_to: List[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return bool(self.delivered_to)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "since": self.since.isoformat(),
            "now": self.now.isoformat(),
            "areas_scanned": self.areas_scanned,
            "areas_with_files": self.areas_with_files,
            "total_file_count": self.total_file_count,
            "total_file_bytes": self.total_file_bytes,
            "remaining_files": self.remaining_files,
            "report_bytes": self.report_bytes,
            "subject": self.subject,
            "delivered_to": list(self.delivered_to),
        }
