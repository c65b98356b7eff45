"""Shared fixtures for announcement tests."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from files_announce.models.catalog import Area, FileRecord
from files_announce.models.message import OutboundMessage
from files_announce.services.catalog_service import CatalogProvider
from files_announce.services.delivery_service import MessageSink

BASE_TS = datetime(2026, 10, 1, 3, 30, tzinfo=timezone.utc)


def make_file(
    file_id,
    area_tag: str = "utils",
    upload_timestamp: Optional[datetime] = None,
    byte_size: int = 1000,
    **overrides,
) -> FileRecord:
    """Build a file record with plausible defaults"""
    data = {
        "file_id": file_id,
        "area_tag": area_tag,
        "file_name": f"FILE{file_id}.ZIP",
        "byte_size": byte_size,
        "desc": f"Description of file {file_id}",
        "file_sha256": f"sha256-{file_id}",
        "file_crc32": f"crc-{file_id}",
        "file_md5": f"md5-{file_id}",
        "file_sha1": f"sha1-{file_id}",
        "upload_by": "sysop",
        "upload_timestamp": upload_timestamp or BASE_TS + timedelta(hours=1),
        "hash_tags": {"dos", "util"},
    }
    data.update(overrides)
    return FileRecord(**data)


class FakeCatalogProvider(CatalogProvider):
    """In-memory catalog with call recording"""

    def __init__(self, areas: List[Area], files: List[FileRecord]):
        self.areas = list(areas)
        self.files: Dict[str, FileRecord] = {str(f.file_id): f for f in files}
        self.order = [str(f.file_id) for f in files]
        self.find_calls: List[tuple] = []
        self.load_calls: List[object] = []

    async def list_areas(self):
        return list(self.areas)

    async def find_new_files(self, area_tag, since, until=None):
        self.find_calls.append((area_tag, since, until))
        found = []
        for key in self.order:
            record = self.files[key]
            if record.area_tag != area_tag or record.upload_timestamp <= since:
                continue
            if until is not None and record.upload_timestamp > until:
                continue
            found.append(record.file_id)
        return found

    async def load_file(self, file_id):
        self.load_calls.append(file_id)
        return self.files.get(str(file_id))

    def add(self, record: FileRecord) -> None:
        self.files[str(record.file_id)] = record
        self.order.append(str(record.file_id))


class RecordingSink(MessageSink):
    """Message sink that keeps messages in memory"""

    def __init__(self, fail_on: Optional[str] = None):
        self.messages: List[OutboundMessage] = []
        self.attempted: List[str] = []
        self.fail_on = fail_on

    @property
    def name(self) -> str:
        return "recording"

    async def persist(self, message: OutboundMessage) -> None:
        self.attempted.append(message.area_tag)
        if message.area_tag == self.fail_on:
            raise ConnectionError(f"area {message.area_tag} unavailable")
        self.messages.append(message)


class StepClock:
    """Clock returning a fixed time that tests move forward explicitly"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def areas() -> List[Area]:
    return [
        Area(area_tag="utils", name="Utilities", desc="Handy tools"),
        Area(area_tag="games", name="Games", desc="Door games and more"),
        Area(area_tag="uploads", name="Uploads", desc="Unsorted uploads"),
    ]


@pytest.fixture
def clock() -> StepClock:
    return StepClock(BASE_TS + timedelta(days=1))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
