"""Counter repair and review sync endpoints.

Counter repair recomputes the denormalized review_count / rating of
businesses. The queue endpoints drive the review source sync that the
scheduler otherwise runs on its own.
"""

import structlog
from fastapi import APIRouter, Depends, Query

from localdirectory.api.dependencies import (
    get_count_synchronizer,
    get_sync_log_book,
    get_sync_processor,
)
from localdirectory.api.models import (
    ClearStuckResponse,
    CountSyncRequest,
    ErrorResponse,
    QueueAddRequest,
    QueueProcessRequest,
)
from localdirectory.models.results import (
    BulkAddResult,
    BusinessIdBatch,
    CountSyncResult,
    FetchImportResult,
    MismatchReport,
    QueueProcessResult,
    QueueStatus,
)
from localdirectory.models.schemas import SyncLog
from localdirectory.sync.counts import ReviewCountSynchronizer
from localdirectory.sync.processor import ReviewSyncProcessor
from localdirectory.sync.queue import SyncLogBook

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])


# =============================================================================
# Counter Repair
# =============================================================================


@router.post(
    "/counts",
    response_model=CountSyncResult,
    summary="Repair review counters",
    description="Recount reviews and ratings for the given businesses.",
)
async def sync_counts(
    request: CountSyncRequest,
    synchronizer: ReviewCountSynchronizer = Depends(get_count_synchronizer),
) -> CountSyncResult:
    return synchronizer.sync_business_batch(request.business_ids)


@router.get(
    "/counts/batch",
    response_model=BusinessIdBatch,
    summary="Page through business ids",
    description="Business ids for batched counter repair. Batch size is capped at 20 and skip at 100.",
)
async def business_id_batch(
    batch_size: int = Query(10, ge=1),
    skip_count: int = Query(0, ge=0),
    synchronizer: ReviewCountSynchronizer = Depends(get_count_synchronizer),
) -> BusinessIdBatch:
    return synchronizer.get_business_id_batch(batch_size=batch_size, skip_count=skip_count)


@router.get(
    "/counts/mismatches",
    response_model=MismatchReport,
    summary="Check for counter drift",
)
async def count_mismatches(
    sample_size: int = Query(10, ge=1, le=500),
    synchronizer: ReviewCountSynchronizer = Depends(get_count_synchronizer),
) -> MismatchReport:
    return synchronizer.check_for_mismatches(sample_size=sample_size)


# =============================================================================
# Review Sync Queue
# =============================================================================


@router.post(
    "/queue",
    response_model=BulkAddResult,
    summary="Queue businesses for review sync",
    responses={
        400: {"model": ErrorResponse, "description": "More than 100 businesses"},
    },
)
async def add_to_queue(
    request: QueueAddRequest,
    processor: ReviewSyncProcessor = Depends(get_sync_processor),
) -> BulkAddResult:
    return processor.queue.bulk_add(request.businesses, priority=request.priority)


@router.get(
    "/queue/status",
    response_model=QueueStatus,
    summary="Queue status",
)
async def queue_status(
    processor: ReviewSyncProcessor = Depends(get_sync_processor),
) -> QueueStatus:
    return processor.queue.status()


@router.post(
    "/queue/process",
    response_model=QueueProcessResult,
    summary="Process pending queue items",
    description="Sync up to max_items queued businesses within the concurrency limit.",
)
async def process_queue(
    request: QueueProcessRequest,
    processor: ReviewSyncProcessor = Depends(get_sync_processor),
) -> QueueProcessResult:
    return await processor.process_queue(max_items=request.max_items)


@router.post(
    "/queue/clear-stuck",
    response_model=ClearStuckResponse,
    summary="Reset stuck queue items",
)
async def clear_stuck(
    processor: ReviewSyncProcessor = Depends(get_sync_processor),
) -> ClearStuckResponse:
    return ClearStuckResponse(cleared=processor.clear_stuck())


# =============================================================================
# Per-Business Sync
# =============================================================================


@router.post(
    "/businesses/{business_id}",
    response_model=FetchImportResult,
    summary="Sync one business now",
    responses={
        400: {"model": ErrorResponse, "description": "Business has no place id"},
        404: {"model": ErrorResponse, "description": "Business not found"},
    },
)
async def sync_business(
    business_id: str,
    processor: ReviewSyncProcessor = Depends(get_sync_processor),
) -> FetchImportResult:
    logger.info("manual_business_sync_requested", business_id=business_id)
    return await processor.sync_business_now(business_id)


@router.get(
    "/businesses/{business_id}/history",
    response_model=list[SyncLog],
    summary="Sync history of a business",
)
async def sync_history(
    business_id: str,
    limit: int = Query(20, ge=1, le=100),
    logs: SyncLogBook = Depends(get_sync_log_book),
) -> list[SyncLog]:
    return logs.history(business_id, limit=limit)
