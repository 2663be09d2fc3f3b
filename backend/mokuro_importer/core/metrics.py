"""Prometheus metrics configuration."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

logger = structlog.get_logger("mokuro_importer.metrics")

app_info = Gauge(
    "app_info",
    "Application information",
    ["version"],
)

# Database connection pool metrics
db_connections_active = Gauge(
    "db_connections_active",
    "Number of active database connections",
)
db_connections_idle = Gauge(
    "db_connections_idle",
    "Number of idle database connections in pool",
)
db_pool_size = Gauge(
    "db_pool_size",
    "Configured database connection pool size",
)

# Database retry metrics
db_lock_errors_total = Counter(
    "db_lock_errors_total",
    "Total number of database lock errors encountered",
)
db_retry_attempts_total = Counter(
    "db_retry_attempts_total",
    "Total number of database operation retry attempts",
    ["operation_type"],
)
db_retries_failed_total = Counter(
    "db_retries_failed_total",
    "Total number of database operations that failed after all retries",
    ["operation_type"],
)

# Import pipeline metrics
volumes_imported_total = Counter(
    "volumes_imported_total",
    "Total number of volumes persisted by the importer",
    ["kind"],  # kind: mokuro, image_only
)
volumes_failed_total = Counter(
    "volumes_failed_total",
    "Total number of import items that failed",
    ["reason"],  # reason: invalid_metadata, missing_fields, duplicate, archive, unexpected
)
volumes_skipped_total = Counter(
    "volumes_skipped_total",
    "Total number of pairings skipped by import policy",
)
orphaned_metadata_total = Counter(
    "orphaned_metadata_total",
    "Total number of sidecar files that matched no images or archive",
)
placeholder_pages_total = Counter(
    "placeholder_pages_total",
    "Total number of placeholder images synthesized for missing pages",
)
nested_archives_total = Counter(
    "nested_archives_total",
    "Total number of archives discovered inside other archives",
)
thumbnail_failures_total = Counter(
    "thumbnail_failures_total",
    "Total number of thumbnails that could not be generated",
)
volume_processing_seconds = Histogram(
    "volume_processing_seconds",
    "Time spent turning one paired source into a processed volume",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


def setup_metrics(app: FastAPI, app_version: str) -> None:
    """Instrument the app and expose /metrics.

    Args:
        app: FastAPI application instance
        app_version: Application version
    """
    if getattr(app.state, "_metrics_initialized", False):
        logger.debug("Metrics already initialized for this app instance, skipping")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/docs", "/openapi.json", "/redoc"],
    )
    instrumentator.instrument(app).expose(app, endpoint="/metrics")

    app.state._metrics_initialized = True
    app_info.labels(version=app_version).set(1)

    logger.info("Metrics initialized", version=app_version)
