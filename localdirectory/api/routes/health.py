"""Health check endpoints.

Provides system health status including the document store, the review
source circuit breaker and the scheduler.
"""

from datetime import datetime, timezone
import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from localdirectory import __version__
from localdirectory.api.dependencies import get_scheduler, get_store
from localdirectory.api.models import HealthCheckResponse, HealthStatus
from localdirectory.core.circuit_breaker import CircuitState, get_all_circuit_breakers
from localdirectory.core.exceptions import DocumentStoreError
from localdirectory.scheduler.jobs import SyncScheduler
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


def check_store_health(store: DocumentStore) -> HealthStatus:
    """Check document store connectivity with a cheap count."""
    start_time = time.time()
    try:
        store.count(Collections.BUSINESSES, {"active": True})
        latency = (time.time() - start_time) * 1000
        return HealthStatus(
            status="healthy",
            latency_ms=round(latency, 2),
            message=f"Connected to {type(store).__name__}",
        )
    except DocumentStoreError as e:
        latency = (time.time() - start_time) * 1000
        logger.error("store_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Document store unavailable: {str(e)[:100]}",
        )


def check_review_source_health() -> HealthStatus:
    """Report open circuit breakers as degraded; the API works without the review source."""
    open_circuits = [
        name
        for name, breaker in get_all_circuit_breakers().items()
        if breaker.state == CircuitState.OPEN
    ]
    if open_circuits:
        return HealthStatus(
            status="degraded",
            message=f"Circuit open: {', '.join(sorted(open_circuits))}",
        )
    return HealthStatus(status="healthy", message="All circuits closed")


def check_scheduler_health(scheduler: Optional[SyncScheduler]) -> HealthStatus:
    if scheduler is None:
        return HealthStatus(status="degraded", message="Scheduler disabled")
    if scheduler.is_running:
        return HealthStatus(status="healthy", message="Scheduler is running")
    return HealthStatus(status="degraded", message="Scheduler is not running")


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    store: DocumentStore = Depends(get_store),
    scheduler: Optional[SyncScheduler] = Depends(get_scheduler),
) -> HealthCheckResponse:
    services = {
        "document_store": check_store_health(store),
        "review_source": check_review_source_health(),
        "scheduler": check_scheduler_health(scheduler),
    }

    statuses = [s.status for s in services.values()]
    if all(s == "healthy" for s in statuses):
        overall_status = "healthy"
    elif any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        services=services,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Check if the service is ready to accept traffic.",
)
async def readiness(store: DocumentStore = Depends(get_store)) -> dict:
    """
    Readiness probe.

    Returns 200 only if the document store is reachable.
    """
    if check_store_health(store).status == "unhealthy":
        raise HTTPException(
            status_code=503,
            detail="Service not ready: document store unavailable",
        )

    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
