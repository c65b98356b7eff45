"""Pipeline orchestration for new-files announcements.

Usage:
    from files_announce.orchestration import build_pipeline

    pipeline = build_pipeline(["fsx_bot"], options_location="announce_options.yaml")
    result = await pipeline.run()
"""

from files_announce.orchestration.announce_pipeline import (
    AnnouncePipeline,
    build_pipeline,
    build_sink,
)
from files_announce.orchestration.result import AnnounceResult

__all__ = [
    "AnnouncePipeline",
    "AnnounceResult",
    "build_pipeline",
    "build_sink",
]
