"""Prometheus metrics for announcement runs.

Usage:
    from files_announce.observability.metrics import ANNOUNCE_RUNS

    ANNOUNCE_RUNS.labels(status="success").inc()
    print(get_metrics_text())
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Private registry keeps tests and multiple pipelines independent
REGISTRY = CollectorRegistry(auto_describe=True)

ANNOUNCE_RUNS = Counter(
    name="files_announce_runs_total",
    documentation="Announcement runs by outcome",
    labelnames=["status"],  # success, empty, not_initialized, failed
    registry=REGISTRY,
)

AREAS_SCANNED = Counter(
    name="files_announce_areas_scanned_total",
    documentation="File areas scanned for new files",
    registry=REGISTRY,
)

FILES_ANNOUNCED = Counter(
    name="files_announce_files_total",
    documentation="Files included in delivered reports",
    registry=REGISTRY,
)

BYTES_ANNOUNCED = Counter(
    name="files_announce_bytes_total",
    documentation="Total size of files included in delivered reports",
    registry=REGISTRY,
)

MESSAGES_DELIVERED = Counter(
    name="files_announce_messages_total",
    documentation="Report messages handed to a destination",
    labelnames=["status"],  # success, failed
    registry=REGISTRY,
)

RUN_DURATION = Histogram(
    name="files_announce_run_duration_seconds",
    documentation="Wall time of announcement runs",
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Metrics in Prometheus text exposition format."""
    return generate_latest(REGISTRY)
