"""Data models for the announcement job."""

from files_announce.models.catalog import Area, AreaReport, FileRecord
from files_announce.models.checkpoint import STAT_KEY_LAST_TS, StatDocument
from files_announce.models.message import EXPLICIT_ENCODING, OutboundMessage
from files_announce.models.options import TEMPLATE_KEYS, AnnounceOptions

__all__ = [
    "Area",
    "AreaReport",
    "FileRecord",
    "STAT_KEY_LAST_TS",
    "StatDocument",
    "EXPLICIT_ENCODING",
    "OutboundMessage",
    "TEMPLATE_KEYS",
    "AnnounceOptions",
]
