"""Per-run announcement options.

Keys mirror the camelCase names operators already use in their options
files (``areaTagsRegEx``, ``maxFilesPerArea``, ...). Python-style
snake_case names are accepted as well.

Usage:
    from files_announce.models.options import AnnounceOptions

    options = AnnounceOptions(**{"maxFilesPerArea": 10, "to": "Everyone"})
    options.template_names()  # header, areaHeader, entry, areaFooter, footer
"""

import codecs
import re
from datetime import timezone, tzinfo
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Template keys in rendering order
TEMPLATE_KEYS: Tuple[str, ...] = (
    "header",
    "areaHeader",
    "entry",
    "areaFooter",
    "footer",
)


class AnnounceOptions(BaseModel):
    """Immutable options resolved once per run.

    Attributes:
        area_tags_regex: Pattern matched against file area tags to scan.
        max_files_per_area: Maximum entries listed per area.
        post_max_size_target: Advisory size target for a report in bytes.
        header: Main header template file.
        area_header: Per-area header template file.
        entry: Per-file entry template file.
        area_footer: Per-area footer template file.
        footer: Main footer template file.
        to_user_name: "To" display name of the posted message.
        from_user_name: "From" display name of the posted message.
        ts_format: strftime pattern for displayed dates.
        display_timezone: IANA zone for displayed dates; host local time
            when unset.
        subject_format: Subject line template.
        template_encoding: Codec used to decode template files.
        board_name: Board name exposed as ``{boardName}``.
        max_concurrent_loads: Upper bound on concurrent catalog loads.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    area_tags_regex: str = Field(default="^(?!uploads).*$", alias="areaTagsRegEx")
    max_files_per_area: int = Field(default=20, ge=1, alias="maxFilesPerArea")
    post_max_size_target: int = Field(
        default=512000, ge=1, alias="postMaxSizeTarget"
    )

    header: str = Field(default="LFASTAR.ASC", min_length=1)
    area_header: str = Field(default="LFAASTAR.ASC", min_length=1, alias="areaHeader")
    entry: str = Field(default="LFAENTRY.ASC", min_length=1)
    area_footer: str = Field(default="LFAAEND.ASC", min_length=1, alias="areaFooter")
    footer: str = Field(default="LFAEND.ASC", min_length=1)

    to_user_name: str = Field(default="All", alias="to")
    from_user_name: str = Field(default="ENiGMA-Bot", alias="from")
    ts_format: str = Field(default="%a, %B %d, %Y", min_length=1, alias="tsFormat")
    display_timezone: Optional[str] = Field(default=None, alias="displayTimezone")
    subject_format: str = Field(
        default="New files on {boardName}", alias="subjectFormat"
    )
    template_encoding: str = Field(default="cp437", alias="templateEncoding")

    board_name: str = Field(default="ENiGMA BBS", alias="boardName")
    max_concurrent_loads: int = Field(
        default=8, ge=1, le=64, alias="maxConcurrentLoads"
    )

    @field_validator("area_tags_regex")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        """Pattern must compile."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid area tag pattern '{v}': {e}")
        return v

    @field_validator("template_encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Encoding must be a codec Python knows about."""
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"Unknown template encoding: {v}")
        return v

    @field_validator("display_timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v and v.upper() != "UTC":
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown display timezone: {v}")
        return v or None

    def display_tzinfo(self) -> Optional[tzinfo]:
        """Zone for ``{sinceTs}``/``{nowTs}``; None means host local time."""
        if not self.display_timezone:
            return None
        if self.display_timezone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.display_timezone)

    def template_names(self) -> Dict[str, str]:
        """Template file names keyed by template key, in rendering order."""
        return {
            "header": self.header,
            "areaHeader": self.area_header,
            "entry": self.entry,
            "areaFooter": self.area_footer,
            "footer": self.footer,
        }
