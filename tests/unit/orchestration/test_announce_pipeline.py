"""Tests for the announcement pipeline."""

import asyncio
from datetime import timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import BASE_TS, FakeCatalogProvider, RecordingSink, make_file
from files_announce.models.checkpoint import STAT_KEY_LAST_TS
from files_announce.models.options import AnnounceOptions
from files_announce.observability.metrics import REGISTRY
from files_announce.orchestration.announce_pipeline import (
    AnnouncePipeline,
    build_pipeline,
    build_sink,
    gather_or_cancel,
)
from files_announce.services.catalog_service import CatalogService
from files_announce.services.checkpoint_service import (
    CheckpointService,
    InMemoryStatStore,
)
from files_announce.services.delivery_service import (
    DeliveryService,
    MessageAreaStore,
    WebhookMessageSink,
)
from files_announce.services.template_service import ReportTemplates, TemplateLoader
from files_announce.utils.exceptions import (
    CatalogError,
    ConfigError,
    DeliveryError,
    FileNotFoundInCatalogError,
    MissingParameter,
    NotInitializedError,
    TemplateLoadError,
)

TEMPLATES = ReportTemplates(
    header="New since {sinceTs}\r\n",
    area_header="== {areaName} ({areaFileCount}, {areaRemainingFiles} more)\r\n",
    entry="{fileName} {fileSize}\r\n    {fileDesc}",
    area_footer="",
    footer="Total: {totalFileCount} files, {totalFileBytes} bytes\r\n",
)


def _zone_available(name):
    try:
        ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return False
    return True


def _seeded_store(ts=BASE_TS):
    return InMemoryStatStore({STAT_KEY_LAST_TS: ts.isoformat()})


def _pipeline(
    provider,
    store,
    sink,
    clock,
    destinations=("fsx_bot",),
    templates=TEMPLATES,
    **option_overrides,
):
    options_manager = MagicMock()
    options_manager.load_options.return_value = AnnounceOptions(**option_overrides)
    template_loader = MagicMock()
    template_loader.load.return_value = templates
    return AnnouncePipeline(
        destinations=list(destinations),
        options_manager=options_manager,
        template_loader=template_loader,
        checkpoint_service=CheckpointService(store),
        catalog_service=CatalogService(provider),
        delivery_service=DeliveryService(sink),
        clock=clock,
    )


def _runs(status):
    return REGISTRY.get_sample_value(
        "files_announce_runs_total", {"status": status}
    ) or 0.0


class TestFirstRun:
    @pytest.mark.asyncio
    async def test_bootstrap_sets_checkpoint_and_scans_nothing(
        self, areas, sink, clock
    ):
        provider = FakeCatalogProvider(areas, [make_file(1)])
        store = InMemoryStatStore()
        pipeline = _pipeline(provider, store, sink, clock)

        with pytest.raises(NotInitializedError):
            await pipeline.run()

        assert CheckpointService(store).get_last() == clock.now
        assert provider.find_calls == []
        assert sink.attempted == []

    @pytest.mark.asyncio
    async def test_second_run_after_bootstrap(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [])
        store = InMemoryStatStore()
        pipeline = _pipeline(provider, store, sink, clock)

        with pytest.raises(NotInitializedError):
            await pipeline.run()

        clock.advance(hours=1)
        provider.add(make_file(1, upload_timestamp=clock.now - timedelta(minutes=5)))

        result = await pipeline.run()

        assert result.delivered_to == ["fsx_bot"]
        assert result.total_file_count == 1


class TestWindow:
    @pytest.mark.asyncio
    async def test_announces_files_in_window(self, areas, sink, clock):
        provider = FakeCatalogProvider(
            areas,
            [make_file(1), make_file(2, "games", byte_size=500)],
        )
        store = _seeded_store()

        result = await _pipeline(provider, store, sink, clock).run()

        assert result.since == BASE_TS
        assert result.now == clock.now
        assert result.total_file_count == 2
        assert result.total_file_bytes == 1500
        assert result.delivered
        assert len(sink.messages) == 1
        assert sink.messages[0].message == result.report_text
        assert "FILE1.ZIP" in result.report_text
        assert "FILE2.ZIP" in result.report_text

    @pytest.mark.asyncio
    async def test_window_bounds(self, areas, sink, clock):
        provider = FakeCatalogProvider(
            areas,
            [
                make_file(1, upload_timestamp=BASE_TS),
                make_file(2, upload_timestamp=clock.now),
                make_file(3, upload_timestamp=clock.now + timedelta(seconds=1)),
            ],
        )

        result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        assert "FILE1.ZIP" not in result.report_text
        assert "FILE2.ZIP" in result.report_text
        assert "FILE3.ZIP" not in result.report_text
        assert provider.find_calls[0] == ("utils", BASE_TS, clock.now)

    @pytest.mark.asyncio
    async def test_checkpoint_advanced_to_now(self, areas, sink, clock):
        store = _seeded_store()

        await _pipeline(FakeCatalogProvider(areas, []), store, sink, clock).run()

        assert CheckpointService(store).get_last() == clock.now

    @pytest.mark.asyncio
    async def test_repeat_run_is_empty(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1), make_file(2)])
        store = _seeded_store()
        pipeline = _pipeline(provider, store, sink, clock)

        first = await pipeline.run()
        clock.advance(minutes=10)
        second = await pipeline.run()

        assert first.total_file_count == 2
        assert second.total_file_count == 0
        assert second.delivered_to == []
        assert second.subject is None
        assert len(sink.messages) == 1
        assert CheckpointService(store).get_last() == clock.now

    @pytest.mark.asyncio
    async def test_clock_behind_checkpoint_keeps_watermark(self, areas, sink, clock):
        ahead = clock.now + timedelta(hours=2)
        store = _seeded_store(ahead)
        provider = FakeCatalogProvider(areas, [make_file(1)])

        result = await _pipeline(provider, store, sink, clock).run()

        assert CheckpointService(store).get_last() == ahead
        assert result.since == result.now == ahead
        assert result.total_file_count == 0
        assert sink.attempted == []

    @pytest.mark.asyncio
    async def test_record_outside_window_dropped(self, areas, sink, clock):
        stale = make_file(9, upload_timestamp=BASE_TS - timedelta(days=3))
        provider = FakeCatalogProvider(areas, [stale, make_file(1)])
        provider.find_new_files = AsyncMock(
            side_effect=lambda tag, since, until: [9, 1] if tag == "utils" else []
        )

        result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        assert result.total_file_count == 1
        assert "FILE9.ZIP" not in result.report_text

    @pytest.mark.asyncio
    async def test_dropped_record_does_not_use_a_cap_slot(self, areas, sink, clock):
        stale = make_file(9, upload_timestamp=BASE_TS - timedelta(days=3))
        files = [stale, make_file(1), make_file(2), make_file(3)]
        provider = FakeCatalogProvider(areas, files)
        provider.find_new_files = AsyncMock(
            side_effect=lambda tag, since, until: [9, 1, 2, 3] if tag == "utils" else []
        )

        result = await _pipeline(
            provider, _seeded_store(), sink, clock, max_files_per_area=2
        ).run()

        assert result.total_file_count == 2
        assert result.remaining_files == 1
        assert "FILE2.ZIP" in result.report_text
        assert "== Utilities (2, 1 more)" in result.report_text
        assert sorted(provider.load_calls) == [1, 2, 9]

    @pytest.mark.asyncio
    async def test_only_stale_records_leave_area_empty(self, areas, sink, clock):
        stale = make_file(9, upload_timestamp=BASE_TS - timedelta(days=3))
        provider = FakeCatalogProvider(areas, [stale])
        provider.find_new_files = AsyncMock(
            side_effect=lambda tag, since, until: [9] if tag == "utils" else []
        )

        result = await _pipeline(
            provider, _seeded_store(), sink, clock, max_files_per_area=2
        ).run()

        assert result.total_file_count == 0
        assert result.remaining_files == 0
        assert sink.attempted == []


class TestAreasAndCaps:
    @pytest.mark.asyncio
    async def test_default_filter_skips_uploads(self, areas, sink, clock):
        provider = FakeCatalogProvider(
            areas, [make_file(1, "uploads"), make_file(2, "games")]
        )

        result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        assert result.areas_scanned == 2
        assert [call[0] for call in provider.find_calls] == ["utils", "games"]
        assert "FILE1.ZIP" not in result.report_text

    @pytest.mark.asyncio
    async def test_cap_keeps_catalog_order(self, areas, sink, clock):
        files = [make_file(i) for i in range(1, 6)]
        provider = FakeCatalogProvider(areas, files)

        result = await _pipeline(
            provider, _seeded_store(), sink, clock, max_files_per_area=2
        ).run()

        assert result.total_file_count == 2
        assert result.remaining_files == 3
        assert sorted(provider.load_calls) == [1, 2]
        assert "== Utilities (2, 3 more)" in result.report_text
        assert result.report_text.index("FILE1.ZIP") < result.report_text.index(
            "FILE2.ZIP"
        )

    @pytest.mark.asyncio
    async def test_areas_render_in_catalog_order(self, areas, sink, clock):
        provider = FakeCatalogProvider(
            areas, [make_file(1, "games"), make_file(2, "utils")]
        )
        real_load = provider.load_file

        async def slow_utils(file_id):
            if file_id == 2:
                await asyncio.sleep(0.02)
            return await real_load(file_id)

        provider.load_file = slow_utils

        result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        text = result.report_text
        assert text.index("== Utilities") < text.index("== Games")

    @pytest.mark.asyncio
    async def test_totals_match_included_files(self, areas, sink, clock):
        files = [make_file(i, byte_size=i * 100) for i in range(1, 5)]
        files += [make_file(10, "games", byte_size=7)]
        provider = FakeCatalogProvider(areas, files)

        result = await _pipeline(
            provider, _seeded_store(), sink, clock, max_files_per_area=3
        ).run()

        assert result.total_file_count == 4
        assert result.total_file_bytes == 100 + 200 + 300 + 7
        assert result.areas_with_files == 2
        assert "Total: 4 files, 607 bytes" in result.report_text

    @pytest.mark.asyncio
    async def test_empty_areas_not_rendered(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1, "games")])

        result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        assert "== Utilities" not in result.report_text
        assert result.areas_with_files == 1


class TestDescriptions:
    @pytest.mark.asyncio
    async def test_description_reflowed_to_placeholder_column(
        self, areas, sink, clock
    ):
        desc = " ".join(["word"] * 40)
        provider = FakeCatalogProvider(areas, [make_file(1, desc=desc)])

        result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        lines = result.report_text.split("\r\n")
        start = next(i for i, line in enumerate(lines) if line.startswith("    word"))
        body = lines[start : start + 3]
        assert all(len(line) <= 79 for line in body)
        assert body[1].startswith("    word")

    @pytest.mark.asyncio
    async def test_reflow_failure_keeps_original(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1, desc="Original text")])

        with patch(
            "files_announce.orchestration.announce_pipeline.reflow",
            side_effect=ValueError("bad input"),
        ):
            result = await _pipeline(provider, _seeded_store(), sink, clock).run()

        assert "    Original text" in result.report_text


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_destinations(self, areas, sink, clock):
        store = _seeded_store()
        pipeline = _pipeline(
            FakeCatalogProvider(areas, []), store, sink, clock, destinations=[" , "]
        )

        with pytest.raises(MissingParameter):
            await pipeline.run()

        assert CheckpointService(store).get_last() == BASE_TS

    @pytest.mark.asyncio
    async def test_config_error_leaves_checkpoint(self, areas, sink, clock):
        store = _seeded_store()
        pipeline = _pipeline(FakeCatalogProvider(areas, []), store, sink, clock)
        pipeline.options_manager.load_options.side_effect = ConfigError("bad")

        with pytest.raises(ConfigError):
            await pipeline.run()

        assert CheckpointService(store).get_last() == BASE_TS

    @pytest.mark.asyncio
    async def test_missing_template_leaves_checkpoint(
        self, areas, sink, clock, tmp_path
    ):
        store = _seeded_store()
        pipeline = _pipeline(
            FakeCatalogProvider(areas, []),
            store,
            sink,
            clock,
            header="NOPE.ASC",
        )
        pipeline.template_loader = TemplateLoader([tmp_path])

        with pytest.raises(TemplateLoadError):
            await pipeline.run()

        assert CheckpointService(store).get_last() == BASE_TS

    @pytest.mark.asyncio
    async def test_vanished_file_aborts_after_checkpoint(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1)])
        provider.load_file = AsyncMock(return_value=None)
        store = _seeded_store()

        with pytest.raises(FileNotFoundInCatalogError) as exc_info:
            await _pipeline(provider, store, sink, clock).run()

        assert exc_info.value.file_id == 1
        assert CheckpointService(store).get_last() == clock.now
        assert sink.attempted == []

    @pytest.mark.asyncio
    async def test_area_failure_cancels_other_scans(self, areas, sink, clock):
        files = [make_file(i, "games") for i in (1, 2, 3)]
        provider = FakeCatalogProvider(areas, files)
        find_games = provider.find_new_files
        finished_loads = []

        async def find_new_files(tag, since, until=None):
            if tag == "utils":
                await asyncio.sleep(0)
                raise CatalogError("utils index is corrupt")
            return await find_games(tag, since, until)

        async def slow_load(file_id):
            await asyncio.sleep(0.05)
            finished_loads.append(file_id)
            return provider.files[str(file_id)]

        provider.find_new_files = find_new_files
        provider.load_file = slow_load

        with pytest.raises(CatalogError, match="corrupt"):
            await _pipeline(provider, _seeded_store(), sink, clock).run()
        await asyncio.sleep(0.1)

        assert finished_loads == []
        assert sink.attempted == []

    @pytest.mark.asyncio
    async def test_delivery_failure_is_fail_fast(self, areas, clock):
        sink = RecordingSink(fail_on="b")
        provider = FakeCatalogProvider(areas, [make_file(1)])
        store = _seeded_store()
        pipeline = _pipeline(provider, store, sink, clock, destinations=["a,b,c"])

        with pytest.raises(DeliveryError):
            await pipeline.run()

        assert sink.attempted == ["a", "b"]
        assert CheckpointService(store).get_last() == clock.now


class TestDelivery:
    @pytest.mark.asyncio
    async def test_subject_and_destinations(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1), make_file(2)])
        pipeline = _pipeline(
            provider,
            _seeded_store(),
            sink,
            clock,
            destinations=["fsx_bot", "local"],
            subject_format="{totalFileCount} new files on {boardName}",
            board_name="Test BBS",
        )

        result = await pipeline.run()

        assert result.subject == "2 new files on Test BBS"
        assert result.delivered_to == ["fsx_bot", "local"]
        assert [m.subject for m in sink.messages] == [result.subject] * 2

    @pytest.mark.asyncio
    async def test_oversized_report_still_delivered(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1)])
        pipeline = _pipeline(
            provider, _seeded_store(), sink, clock, post_max_size_target=10
        )

        with patch(
            "files_announce.orchestration.announce_pipeline.logger"
        ) as mock_logger:
            result = await pipeline.run()

        assert result.delivered
        assert result.report_bytes > 10
        events = [c.args[0] for c in mock_logger.warning.call_args_list]
        assert "report_exceeds_size_target" in events

    @pytest.mark.asyncio
    async def test_since_label_uses_ts_format(self, areas, sink, clock):
        provider = FakeCatalogProvider(areas, [make_file(1)])

        result = await _pipeline(
            provider,
            _seeded_store(),
            sink,
            clock,
            ts_format="%Y-%m-%d",
            display_timezone="UTC",
        ).run()

        assert result.report_text.startswith("New since 2026-10-01\r\n")

    @pytest.mark.skipif(
        not _zone_available("America/Los_Angeles"), reason="no tz database"
    )
    @pytest.mark.asyncio
    async def test_since_label_in_display_timezone(self, areas, sink, clock):
        """03:30 UTC on Oct 1 is still Sep 30 on the US west coast."""
        provider = FakeCatalogProvider(areas, [make_file(1)])

        result = await _pipeline(
            provider,
            _seeded_store(),
            sink,
            clock,
            ts_format="%Y-%m-%d",
            display_timezone="America/Los_Angeles",
        ).run()

        assert result.report_text.startswith("New since 2026-09-30\r\n")
        assert result.since == BASE_TS


class TestMetrics:
    @pytest.mark.asyncio
    async def test_run_outcomes_counted(self, areas, sink, clock):
        before_success = _runs("success")
        before_empty = _runs("empty")
        provider = FakeCatalogProvider(areas, [make_file(1)])
        pipeline = _pipeline(provider, _seeded_store(), sink, clock)

        await pipeline.run()
        clock.advance(minutes=1)
        await pipeline.run()

        assert _runs("success") == before_success + 1
        assert _runs("empty") == before_empty + 1

    @pytest.mark.asyncio
    async def test_failures_counted(self, areas, sink, clock):
        before = _runs("failed")
        pipeline = _pipeline(
            FakeCatalogProvider(areas, []),
            _seeded_store(),
            sink,
            clock,
            destinations=[],
        )

        with pytest.raises(MissingParameter):
            await pipeline.run()

        assert _runs("failed") == before + 1


class TestWiring:
    def test_build_sink_defaults_to_message_store(self, tmp_path):
        sink = build_sink(tmp_path / "messages")

        assert isinstance(sink, MessageAreaStore)
        assert sink.root == tmp_path / "messages"

    def test_build_sink_webhook(self, tmp_path):
        sink = build_sink(tmp_path, webhook_url="http://bbs.local/hook")

        assert isinstance(sink, WebhookMessageSink)
        assert sink.url == "http://bbs.local/hook"

    def test_build_pipeline_searches_options_dir_first(self, tmp_path):
        pipeline = build_pipeline(
            ["fsx_bot,local"],
            options_location=str(tmp_path / "opts.yaml"),
            catalog_path=tmp_path / "catalog.json",
            stat_store_path=tmp_path / "stats.json",
            message_dir=tmp_path / "messages",
        )

        assert pipeline.destinations == ["fsx_bot", "local"]
        assert pipeline.template_loader.search_dirs[0] == tmp_path.resolve()
        assert isinstance(pipeline.delivery_service.sink, MessageAreaStore)


class TestGatherOrCancel:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        async def value(v, delay):
            await asyncio.sleep(delay)
            return v

        result = await gather_or_cancel(
            [value("a", 0.03), value("b", 0), value("c", 0.01)]
        )

        assert result == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await gather_or_cancel([]) == []

    @pytest.mark.asyncio
    async def test_first_error_cancels_pending(self):
        cancelled = []

        async def fail():
            raise CatalogError("boom")

        async def slow(name):
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                cancelled.append(name)
                raise

        with pytest.raises(CatalogError, match="boom"):
            await gather_or_cancel([slow("x"), fail(), slow("y")])

        assert sorted(cancelled) == ["x", "y"]

    @pytest.mark.asyncio
    async def test_outer_cancel_reaches_children(self):
        cancelled = []

        async def slow():
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        outer = asyncio.ensure_future(gather_or_cancel([slow(), slow()]))
        await asyncio.sleep(0.01)
        outer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await outer

        assert cancelled == [True, True]
