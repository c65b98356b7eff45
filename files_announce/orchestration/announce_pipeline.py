"""New-files announcement pipeline.

Stages, run strictly in order and failing fast on the first error::

    LoadOptions -> ReadTemplates -> ResolveWindow -> EnumerateAreas
      -> per area {FindNew -> Cap -> Load -> Reflow}
      -> Render -> Deliver (only if any file was found)

The checkpoint is advanced in ResolveWindow, before anything is scanned.
A run that fails later therefore never re-announces its window; files in
it are skipped instead of posted twice.

Catalog I/O for areas and files runs concurrently. Aggregation and
rendering happen afterwards in catalog order, so totals do not depend on
which load finished first.
"""

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import (
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

import structlog

from files_announce.models.catalog import Area, AreaReport, FileRecord
from files_announce.models.options import AnnounceOptions
from files_announce.observability.logging import bind_context
from files_announce.observability.metrics import (
    ANNOUNCE_RUNS,
    AREAS_SCANNED,
    BYTES_ANNOUNCED,
    FILES_ANNOUNCED,
    RUN_DURATION,
)
from files_announce.orchestration.result import AnnounceResult
from files_announce.output.description_formatter import description_columns, reflow
from files_announce.output.report_renderer import ReportRenderer, render_subject
from files_announce.services.catalog_service import (
    CatalogService,
    FileId,
    JsonFileCatalog,
)
from files_announce.services.checkpoint_service import (
    CheckpointService,
    JsonFileStatStore,
)
from files_announce.services.config_manager import OptionsManager
from files_announce.services.delivery_service import (
    DeliveryService,
    MessageAreaStore,
    MessageSink,
    WebhookMessageSink,
    parse_destinations,
)
from files_announce.services.template_service import TemplateLoader
from files_announce.utils.exceptions import (
    AnnounceError,
    MissingParameter,
    NotInitializedError,
)

logger = structlog.get_logger()

Clock = Callable[[], datetime]
T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def gather_or_cancel(aws: Iterable[Awaitable[T]]) -> List[T]:
    """Await all in order, like asyncio.gather, but stop at the first error.

    Tasks still running when one fails are cancelled and awaited, so a
    failed run leaves no catalog loads behind. The first failure in input
    order is raised; errors raised while cancelling are dropped.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    errors = [
        task.exception()
        for task in tasks
        if task in done and not task.cancelled() and task.exception()
    ]
    if errors:
        raise errors[0]
    return [task.result() for task in tasks]


class AnnouncePipeline:
    """Scan for new files, render the report and deliver it."""

    def __init__(
        self,
        destinations: Sequence[str],
        options_manager: OptionsManager,
        template_loader: TemplateLoader,
        checkpoint_service: CheckpointService,
        catalog_service: CatalogService,
        delivery_service: DeliveryService,
        renderer: Optional[ReportRenderer] = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the pipeline.

        Args:
            destinations: Message area tags to post to; entries may hold
                several comma separated tags
            options_manager: Source of run options
            template_loader: Reads the five report templates
            checkpoint_service: Holds the last run timestamp
            catalog_service: File catalog queries
            delivery_service: Posts the report
            renderer: Report renderer
            clock: Returns the current, timezone aware time
        """
        self.destinations = parse_destinations(destinations)
        self.options_manager = options_manager
        self.template_loader = template_loader
        self.checkpoint_service = checkpoint_service
        self.catalog_service = catalog_service
        self.delivery_service = delivery_service
        self.renderer = renderer or ReportRenderer()
        self.clock = clock

    async def run(self) -> AnnounceResult:
        """Run the pipeline once.

        Returns:
            AnnounceResult; ``delivered_to`` is empty if nothing was new

        Raises:
            MissingParameter: No destinations were given
            ConfigError: Options source is malformed
            TemplateLoadError: A template is missing or unreadable
            NotInitializedError: First ever run; checkpoint now initialized
            CatalogError: Catalog query or load failed
            DeliveryError: A destination failed
        """
        start = time.monotonic()
        try:
            result = await self._execute()
        except NotInitializedError:
            ANNOUNCE_RUNS.labels(status="not_initialized").inc()
            raise
        except AnnounceError as e:
            ANNOUNCE_RUNS.labels(status="failed").inc()
            logger.error(
                "announce_failed", error_type=type(e).__name__, error=str(e)
            )
            raise
        finally:
            RUN_DURATION.observe(time.monotonic() - start)

        ANNOUNCE_RUNS.labels(status="success" if result.delivered else "empty").inc()
        return result

    async def _execute(self) -> AnnounceResult:
        if not self.destinations:
            raise MissingParameter(
                "At least one destination message area tag required"
            )

        options = self.options_manager.load_options()
        templates = self.template_loader.load(options)

        since, now = self.resolve_window()
        display_tz = options.display_tzinfo()
        since_label = since.astimezone(display_tz).strftime(options.ts_format)
        now_label = now.astimezone(display_tz).strftime(options.ts_format)
        bind_context(since=since.isoformat(), now=now.isoformat())

        logger.info(
            "announce_window_resolved",
            since=since.isoformat(),
            now=now.isoformat(),
            destinations=self.destinations,
        )

        areas = await self.catalog_service.list_areas(options.area_tags_regex)
        AREAS_SCANNED.inc(len(areas))
        area_reports = await self.collect_area_reports(
            areas, options, since, now, templates.desc_indent
        )

        report = self.renderer.render(
            options, templates, area_reports, since_label, now_label
        )

        result = AnnounceResult(
            since=since,
            now=now,
            areas_scanned=len(areas),
            areas_with_files=sum(1 for r in area_reports if r.file_count),
            total_file_count=report.total_file_count,
            total_file_bytes=report.total_file_bytes,
            remaining_files=sum(r.remaining_files for r in area_reports),
            report_bytes=report.byte_size,
            report_text=report.text,
        )

        if report.total_file_count == 0:
            logger.info("no_new_files", areas_scanned=len(areas))
            return result

        if report.byte_size > options.post_max_size_target:
            logger.warning(
                "report_exceeds_size_target",
                report_bytes=report.byte_size,
                target_bytes=options.post_max_size_target,
            )

        messages = await self.delivery_service.deliver(
            report.text, self.destinations, options, report.context
        )

        result.subject = render_subject(options.subject_format, report.context)
        result.delivered_to = [m.area_tag for m in messages]

        FILES_ANNOUNCED.inc(report.total_file_count)
        BYTES_ANNOUNCED.inc(report.total_file_bytes)

        logger.info("announce_completed", **result.to_dict())
        return result

    def resolve_window(self) -> Tuple[datetime, datetime]:
        """Read the checkpoint and immediately advance it.

        Returns:
            (since, now) where files with since < upload time <= now are new

        Raises:
            NotInitializedError: No checkpoint existed; it is now set
        """
        last = self.checkpoint_service.get_last()
        now = self.clock()

        if last is not None and now < last:
            # Never move the watermark backwards
            logger.warning(
                "clock_behind_checkpoint",
                checkpoint=last.isoformat(),
                now=now.isoformat(),
            )
            now = last

        self.checkpoint_service.set_last(now)

        if last is None:
            logger.info("checkpoint_initialized", timestamp=now.isoformat())
            raise NotInitializedError(
                "Last timestamp not set; set to now for next scheduled run"
            )

        return last, now

    async def collect_area_reports(
        self,
        areas: Sequence[Area],
        options: AnnounceOptions,
        since: datetime,
        now: datetime,
        desc_indent: int,
    ) -> List[AreaReport]:
        """Scan all areas concurrently; results keep area order."""
        semaphore = asyncio.Semaphore(options.max_concurrent_loads)
        return await gather_or_cancel(
            self._scan_area(area, options, since, now, desc_indent, semaphore)
            for area in areas
        )

    async def _scan_area(
        self,
        area: Area,
        options: AnnounceOptions,
        since: datetime,
        now: datetime,
        desc_indent: int,
        semaphore: asyncio.Semaphore,
    ) -> AreaReport:
        async with semaphore:
            file_ids = await self.catalog_service.find_new_files(
                area.area_tag, since, now
            )

        cap = options.max_files_per_area
        files: List[FileRecord] = []
        dropped = 0
        next_index = 0

        # Records outside the window do not count against the cap
        while len(files) < cap and next_index < len(file_ids):
            batch = file_ids[next_index : next_index + cap - len(files)]
            next_index += len(batch)
            records = await gather_or_cancel(
                self._load_file(file_id, semaphore) for file_id in batch
            )
            for record in records:
                if not since < record.upload_timestamp <= now:
                    dropped += 1
                    logger.warning(
                        "file_outside_window",
                        area_tag=area.area_tag,
                        file_id=record.file_id,
                        upload_timestamp=record.upload_timestamp.isoformat(),
                    )
                    continue
                files.append(self.enrich(record, desc_indent))

        remaining = len(file_ids) - dropped - len(files)

        logger.debug(
            "area_scanned",
            area_tag=area.area_tag,
            new_files=len(file_ids) - dropped,
            included=len(files),
            remaining=remaining,
        )
        return AreaReport(area=area, files=tuple(files), remaining_files=remaining)

    async def _load_file(
        self, file_id: FileId, semaphore: asyncio.Semaphore
    ) -> FileRecord:
        async with semaphore:
            return await self.catalog_service.load_file(file_id)

    def enrich(self, record: FileRecord, desc_indent: int) -> FileRecord:
        """Reflow the description to fit beside the entry placeholder.

        A formatting failure keeps the original description.
        """
        try:
            desc = reflow(record.desc, description_columns(desc_indent), desc_indent)
        except Exception as e:
            logger.warning(
                "description_reflow_failed",
                file_id=record.file_id,
                error=str(e),
            )
            return record

        return record.with_desc(desc) if desc else record


def build_sink(message_dir: Path, webhook_url: Optional[str] = None) -> MessageSink:
    """Webhook sink when a URL is given, otherwise the on-disk message store"""
    if webhook_url:
        return WebhookMessageSink(webhook_url)
    return MessageAreaStore(message_dir)


def build_pipeline(
    destinations: Sequence[str],
    options_location: Optional[str] = None,
    catalog_path: Path = Path("data/catalog.json"),
    stat_store_path: Path = Path("data/stats.json"),
    message_dir: Path = Path("data/messages"),
    webhook_url: Optional[str] = None,
    clock: Clock = utc_now,
) -> AnnouncePipeline:
    """Wire a pipeline from file locations.

    Relative template names resolve against the options file's directory
    first, then the bundled templates.
    """
    options_manager = OptionsManager(options_location)
    return AnnouncePipeline(
        destinations=destinations,
        options_manager=options_manager,
        template_loader=TemplateLoader([options_manager.base_dir]),
        checkpoint_service=CheckpointService(JsonFileStatStore(stat_store_path)),
        catalog_service=CatalogService(JsonFileCatalog(catalog_path)),
        delivery_service=DeliveryService(build_sink(message_dir, webhook_url)),
        clock=clock,
    )
