"""Render the new-files report from the five templates.

The report is assembled in a fixed order::

    <header>
    <areaHeader>     \
    <entry> ...       > once per area with new files
    <areaFooter>     /
    <footer>

Each fragment is passed through ``substitute`` against one running
RenderContext. Totals in the context only ever grow during a run, so a
placeholder always shows the totals as of the point it is rendered.

Usage:
    renderer = ReportRenderer()
    report = renderer.render(options, templates, area_reports, since, now)
    if report.total_file_count:
        subject = render_subject(options.subject_format, report.context)
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

import structlog

from files_announce.models.catalog import AreaReport, FileRecord
from files_announce.models.options import AnnounceOptions
from files_announce.services.template_service import ReportTemplates

logger = structlog.get_logger()

PLACEHOLDER_TOKENS: FrozenSet[str] = frozenset(
    {
        "boardName",
        "nowTs",
        "sinceTs",
        "areaFileCount",
        "areaRemainingFiles",
        "areaFileBytes",
        "totalFileCount",
        "totalFileBytes",
        "areaName",
        "areaDesc",
        "fileName",
        "fileSize",
        "fileDesc",
        "fileSha256",
        "fileCrc32",
        "fileMd5",
        "fileSha1",
        "uploadBy",
        "fileUploadTs",
        "fileHashTags",
    }
)

_TOKEN_RE = re.compile(r"\{([A-Za-z0-9_]+)\}")


def substitute(template: str, context: Mapping[str, Any]) -> str:
    """Replace known ``{token}`` placeholders with context values.

    Unknown tokens, and known tokens with no value in ``context``, are left
    untouched so templates may carry example text in braces.

    Args:
        template: Template text
        context: Placeholder values

    Returns:
        Substituted text
    """

    def replace(match: "re.Match[str]") -> str:
        token = match.group(1)
        if token in PLACEHOLDER_TOKENS and token in context:
            value = context[token]
            return "" if value is None else str(value)
        return match.group(0)

    return _TOKEN_RE.sub(replace, template)


def render_subject(subject_format: str, context: Mapping[str, Any]) -> str:
    """Subject line rendered against the final totals"""
    return substitute(subject_format, context).strip()


class RenderContext(Mapping[str, Any]):
    """Running placeholder values for one report.

    Holds board-level fields from the start, area fields once an area
    begins and file fields once an entry begins. Totals are only ever
    added to.
    """

    def __init__(self, board_name: str, now_ts: str, since_ts: str):
        self._values: Dict[str, Any] = {
            "boardName": board_name,
            "nowTs": now_ts,
            "sinceTs": since_ts,
            "totalFileCount": 0,
            "totalFileBytes": 0,
        }

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    @property
    def total_file_count(self) -> int:
        return self._values["totalFileCount"]

    @property
    def total_file_bytes(self) -> int:
        return self._values["totalFileBytes"]

    def begin_area(self, report: AreaReport) -> None:
        """Set area fields and add the area's included files to totals"""
        self._values.update(
            {
                "areaName": report.area.name,
                "areaDesc": report.area.desc,
                "areaFileCount": report.file_count,
                "areaRemainingFiles": report.remaining_files,
                "areaFileBytes": report.area_file_bytes,
                "totalFileCount": self.total_file_count + report.file_count,
                "totalFileBytes": self.total_file_bytes + report.area_file_bytes,
            }
        )

    def begin_entry(self, record: FileRecord) -> None:
        """Set file fields for the entry about to be rendered"""
        self._values.update(
            {
                "fileName": record.file_name,
                "fileSize": record.byte_size,
                "fileDesc": record.desc or "",
                "fileSha256": record.file_sha256,
                "fileCrc32": record.file_crc32 or "",
                "fileMd5": record.file_md5 or "",
                "fileSha1": record.file_sha1 or "",
                "uploadBy": record.upload_by or "N/A",
                "fileUploadTs": record.upload_timestamp.isoformat(),
                "fileHashTags": record.hash_tags_text,
            }
        )

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)


@dataclass
class RenderedReport:
    """Rendered report text with the totals it announced"""

    text: str
    total_file_count: int
    total_file_bytes: int
    context: RenderContext

    @property
    def byte_size(self) -> int:
        """Size of the body in the 8-bit encoding it is posted with"""
        return len(self.text.encode("cp437", errors="replace"))


class ReportRenderer:
    """Builds the report text from templates and per-area results"""

    def render(
        self,
        options: AnnounceOptions,
        templates: ReportTemplates,
        area_reports: Iterable[AreaReport],
        since_ts: str,
        now_ts: str,
        context: Optional[RenderContext] = None,
    ) -> RenderedReport:
        """Render the full report.

        Areas without included files produce no output at all. A result
        with ``total_file_count == 0`` must not be delivered.

        Args:
            options: Run options (board name)
            templates: Decoded templates
            area_reports: Per-area results in traversal order
            since_ts: Display form of the previous checkpoint
            now_ts: Display form of this run's time
            context: Optional pre-built context

        Returns:
            RenderedReport with text and final totals
        """
        if context is None:
            context = RenderContext(options.board_name, now_ts, since_ts)

        parts = [substitute(templates.header, context)]
        areas_rendered = 0

        for report in area_reports:
            if report.file_count == 0:
                continue

            context.begin_area(report)
            parts.append(substitute(templates.area_header, context))

            for record in report.files:
                context.begin_entry(record)
                parts.append(substitute(templates.entry, context))

            parts.append(substitute(templates.area_footer, context))
            areas_rendered += 1

        parts.append(substitute(templates.footer, context))

        rendered = RenderedReport(
            text="".join(parts),
            total_file_count=context.total_file_count,
            total_file_bytes=context.total_file_bytes,
            context=context,
        )

        logger.debug(
            "report_rendered",
            areas=areas_rendered,
            total_file_count=rendered.total_file_count,
            total_file_bytes=rendered.total_file_bytes,
        )
        return rendered
