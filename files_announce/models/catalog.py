"""File catalog records.

Areas and files are owned by the catalog; the announcement job only reads
them. The records are frozen so a run cannot mutate catalog data, apart
from replacing a file description with its reflowed form via
``FileRecord.with_desc``.
"""

from datetime import datetime, timezone
from typing import FrozenSet, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class Area(BaseModel):
    """A named partition of the file catalog"""

    model_config = ConfigDict(frozen=True)

    area_tag: str = Field(..., min_length=1)
    name: str
    desc: str = ""


class FileRecord(BaseModel):
    """One catalog entry with the metadata shown in a report"""

    model_config = ConfigDict(frozen=True)

    file_id: Union[int, str]
    area_tag: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    byte_size: int = Field(0, ge=0)
    desc: str = ""
    file_sha256: str = ""
    file_crc32: Optional[str] = None
    file_md5: Optional[str] = None
    file_sha1: Optional[str] = None
    upload_by: Optional[str] = None
    upload_timestamp: datetime
    hash_tags: FrozenSet[str] = Field(default_factory=frozenset)

    @field_validator("upload_timestamp")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def hash_tags_text(self) -> str:
        """Tags as a stable, comma separated string"""
        return ", ".join(sorted(self.hash_tags))

    def with_desc(self, desc: str) -> "FileRecord":
        """Copy of this record with a replaced description"""
        return self.model_copy(update={"desc": desc})


class AreaReport(BaseModel):
    """New files found in one area during a run"""

    model_config = ConfigDict(frozen=True)

    area: Area
    files: Tuple[FileRecord, ...] = ()
    remaining_files: int = Field(0, ge=0)

    @computed_field  # type: ignore[misc]
    @property
    def file_count(self) -> int:
        """Number of files included in the report"""
        return len(self.files)

    @computed_field  # type: ignore[misc]
    @property
    def area_file_bytes(self) -> int:
        """Total size of the included files only"""
        return sum(f.byte_size for f in self.files)
