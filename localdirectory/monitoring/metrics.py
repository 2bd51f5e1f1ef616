"""
Prometheus metrics for the review pipeline.

Covers the review source client, the import/dedup pipeline and the
sync queue. Served at /metrics by the API.

Usage:
    from localdirectory.monitoring.metrics import track_review_source_request

    with track_review_source_request("geoscraper", "fetch_page"):
        page = await client.fetch_page(place_id)

    # Or manually
    record_import_outcome("batch", "duplicate")
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Review source (third-party API) metrics
REVIEW_SOURCE_REQUESTS = Counter(
    "localdirectory_review_source_requests_total",
    "Requests made to third-party review sources",
    ["source", "operation", "status"],
)

REVIEW_SOURCE_LATENCY = Histogram(
    "localdirectory_review_source_latency_seconds",
    "Latency of review source requests",
    ["source", "operation"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

REVIEWS_FETCHED = Counter(
    "localdirectory_reviews_fetched_total",
    "Reviews returned by review sources before filtering",
    ["source"],
)

# Import pipeline metrics
REVIEW_IMPORT_RECORDS = Counter(
    "localdirectory_review_import_records_total",
    "Review records processed by the importers",
    ["mode", "outcome"],
)

BUSINESS_MATCHES = Counter(
    "localdirectory_business_matches_total",
    "Business match attempts by winning strategy",
    ["match_type"],
)

# Sync queue metrics
SYNC_QUEUE_DEPTH = Gauge(
    "localdirectory_sync_queue_depth",
    "Review sync queue items by status",
    ["status"],
)

SYNC_ITEM_DURATION = Histogram(
    "localdirectory_sync_item_duration_seconds",
    "Time spent syncing one business",
    ["status"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "localdirectory_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "localdirectory_circuit_breaker_failures_total",
    "Total failures recorded by circuit breakers",
    ["service"],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_review_source_request(
    source: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track review source requests.

    Usage:
        with track_review_source_request("geoscraper", "fetch_page"):
            data = await client.post(...)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        REVIEW_SOURCE_REQUESTS.labels(
            source=source,
            operation=operation,
            status=status,
        ).inc()
        REVIEW_SOURCE_LATENCY.labels(
            source=source,
            operation=operation,
        ).observe(duration)


@contextmanager
def track_sync_item() -> Generator[dict, None, None]:
    """
    Context manager to time one business sync.

    Usage:
        with track_sync_item() as ctx:
            result = await fetch_and_import(...)
            ctx["status"] = "success" if result.success else "failed"
    """
    start_time = time.perf_counter()
    context = {"status": "error"}
    try:
        yield context
    finally:
        duration = time.perf_counter() - start_time
        SYNC_ITEM_DURATION.labels(status=context.get("status", "error")).observe(duration)


def record_import_outcome(mode: str, outcome: str, count: int = 1) -> None:
    """Count review records by import mode and outcome."""
    if count:
        REVIEW_IMPORT_RECORDS.labels(mode=mode, outcome=outcome).inc(count)


def record_business_match(match_type: str) -> None:
    """Count which matching strategy resolved a record."""
    BUSINESS_MATCHES.labels(match_type=match_type).inc()


def record_reviews_fetched(source: str, count: int) -> None:
    """Count reviews returned by a review source."""
    if count:
        REVIEWS_FETCHED.labels(source=source).inc(count)


def set_queue_depth(status: str, value: int) -> None:
    """Publish the current number of queue items in a status."""
    SYNC_QUEUE_DEPTH.labels(status=status).set(value)


def update_circuit_breaker_state(service: str, state: str) -> None:
    """
    Update circuit breaker state gauge.

    Args:
        service: Service name
        state: Circuit state ("closed", "half_open", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    CIRCUIT_BREAKER_STATE.labels(service=service).set(state_map.get(state, 0))


def record_circuit_breaker_failure(service: str) -> None:
    """Record a circuit breaker failure."""
    CIRCUIT_BREAKER_FAILURES.labels(service=service).inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_metrics_app() -> Starlette:
    """
    Get a Starlette app for serving metrics.

    Mounted at /metrics by localdirectory.api.main.
    """
    return Starlette(
        routes=[
            Route("/", metrics_endpoint),
        ]
    )
