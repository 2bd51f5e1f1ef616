"""Review sync queue and sync audit log.

Queue item lifecycle:

    pending --mark_processing--> processing --mark_completed--> completed
                                     |
                                     +--mark_failed--> pending   (retry_count < max_retries)
                                     +--mark_failed--> failed    (otherwise)
                                     +--clear_stuck--> pending   (processing too long)

At most max_concurrent items are processing at once; next_items() only hands
out the free slots. Items with a negative priority are paused and never
handed out.

Example:
    queue = ReviewSyncQueue(store)
    queue.add(business.id, business.place_id, priority=7)
    for item in queue.next_items():
        queue.mark_processing(item.id)
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from localdirectory.core.exceptions import BatchLimitError, DocumentNotFoundError
from localdirectory.models.results import BulkAddResult, FetchImportResult, QueueStatus
from localdirectory.models.schemas import (
    QueueItemStatus,
    SyncLog,
    SyncLogStatus,
    SyncQueueItem,
    SyncStatus,
    utc_now,
)
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)

RECENT_WINDOW = timedelta(hours=24)
STATUS_SCAN_LIMIT = 1000
DEFAULT_PRIORITY = 5


class QueueRequest(BaseModel):
    """A business to enqueue for review sync."""

    business_id: str = Field(..., description="Business document id")
    place_id: str = Field(..., min_length=1, description="Place identifier used by the review source")


class ReviewSyncQueue:
    """Priority queue of businesses waiting for a review sync, persisted in the store."""

    def __init__(
        self,
        store: DocumentStore,
        max_concurrent: int = 3,
        max_retries: int = 3,
        stuck_after_seconds: int = 300,
        bulk_add_limit: int = 100,
    ):
        self._store = store
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.stuck_after = timedelta(seconds=stuck_after_seconds)
        self.bulk_add_limit = bulk_add_limit

    def _items(self, status: QueueItemStatus) -> list[SyncQueueItem]:
        rows = self._store.find(
            Collections.SYNC_QUEUE, {"status": status}, limit=STATUS_SCAN_LIMIT
        )
        return [SyncQueueItem.from_db_row(row) for row in rows]

    def get(self, queue_id: str) -> Optional[SyncQueueItem]:
        row = self._store.get(Collections.SYNC_QUEUE, queue_id)
        return SyncQueueItem.from_db_row(row) if row else None

    def open_item(self, business_id: str) -> Optional[SyncQueueItem]:
        """The pending or processing item for a business, if one exists."""
        for row in self._store.find(Collections.SYNC_QUEUE, {"business_id": business_id}):
            if row.get("status") in (QueueItemStatus.PENDING.value, QueueItemStatus.PROCESSING.value):
                return SyncQueueItem.from_db_row(row)
        return None

    def open_business_ids(self) -> set[str]:
        ids = {item.business_id for item in self._items(QueueItemStatus.PENDING)}
        ids.update(item.business_id for item in self._items(QueueItemStatus.PROCESSING))
        return ids

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def add(
        self,
        business_id: str,
        place_id: str,
        priority: int = DEFAULT_PRIORITY,
        now: Optional[datetime] = None,
    ) -> tuple[str, bool]:
        """Enqueue a business; returns (queue_id, created).

        Idempotent: a business already waiting or syncing keeps its item.
        """
        existing = self.open_item(business_id)
        if existing is not None:
            return existing.id, False

        item = SyncQueueItem(
            business_id=business_id,
            place_id=place_id,
            priority=priority,
            requested_at=now or utc_now(),
        )
        self._store.insert(Collections.SYNC_QUEUE, item.to_db_row())
        logger.debug("sync_queue_item_added", queue_id=item.id, business_id=business_id, priority=priority)
        return item.id, True

    def bulk_add(
        self,
        requests: list[QueueRequest],
        priority: int = DEFAULT_PRIORITY,
        now: Optional[datetime] = None,
    ) -> BulkAddResult:
        if len(requests) > self.bulk_add_limit:
            raise BatchLimitError("bulk_add", self.bulk_add_limit, len(requests))

        result = BulkAddResult()
        now = now or utc_now()
        for request in requests:
            queue_id, created = self.add(request.business_id, request.place_id, priority, now)
            if created:
                result.added += 1
                result.queue_ids.append(queue_id)
            else:
                result.skipped += 1

        logger.info("sync_queue_bulk_added", added=result.added, skipped=result.skipped, priority=priority)
        return result

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def status(self, now: Optional[datetime] = None) -> QueueStatus:
        """Counts of recent pending, processing and finished items."""
        now = now or utc_now()
        since = now - RECENT_WINDOW

        pending = [i for i in self._items(QueueItemStatus.PENDING) if i.requested_at >= since]
        processing = self._store.count(Collections.SYNC_QUEUE, {"status": QueueItemStatus.PROCESSING})
        completed = [
            i for i in self._items(QueueItemStatus.COMPLETED)
            if i.completed_at and i.completed_at >= since
        ]
        failed = [
            i for i in self._items(QueueItemStatus.FAILED)
            if i.failed_at and i.failed_at >= since
        ]
        return QueueStatus(
            pending=len(pending),
            processing=processing,
            completed_recent=len(completed),
            failed_recent=len(failed),
            max_connections=self.max_concurrent,
            available_slots=max(0, self.max_concurrent - processing),
        )

    def processing_count(self) -> int:
        return self._store.count(Collections.SYNC_QUEUE, {"status": QueueItemStatus.PROCESSING})

    def pending_count(self) -> int:
        return self._store.count(Collections.SYNC_QUEUE, {"status": QueueItemStatus.PENDING})

    def next_items(self, limit: Optional[int] = None) -> list[SyncQueueItem]:
        """Pending items for the free slots: highest priority first, then oldest."""
        slots = self.max_concurrent - self.processing_count()
        if limit is not None:
            slots = min(slots, limit)
        if slots <= 0:
            return []

        ready = [i for i in self._items(QueueItemStatus.PENDING) if i.priority >= 0]
        ready.sort(key=lambda i: (-i.priority, i.requested_at))
        return ready[:slots]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _patch(self, queue_id: str, fields: dict) -> None:
        self._store.patch(Collections.SYNC_QUEUE, queue_id, fields)

    def mark_processing(self, queue_id: str, now: Optional[datetime] = None) -> None:
        self._patch(queue_id, {"status": QueueItemStatus.PROCESSING, "started_at": now or utc_now()})

    def mark_completed(
        self,
        queue_id: str,
        result: FetchImportResult,
        now: Optional[datetime] = None,
    ) -> None:
        self._patch(
            queue_id,
            {
                "status": QueueItemStatus.COMPLETED,
                "completed_at": now or utc_now(),
                "results": {
                    "fetched": result.fetched,
                    "filtered": result.filtered,
                    "imported": result.imported,
                    "skipped": result.skipped,
                },
            },
        )

    def mark_failed(
        self, queue_id: str, error: str, now: Optional[datetime] = None
    ) -> QueueItemStatus:
        """Record a failed attempt; returns the status the item ends up in."""
        item = self.get(queue_id)
        if item is None:
            raise DocumentNotFoundError(Collections.SYNC_QUEUE, queue_id)

        retry_count = item.retry_count + 1
        if retry_count < self.max_retries:
            self._patch(
                queue_id,
                {
                    "status": QueueItemStatus.PENDING,
                    "retry_count": retry_count,
                    "last_error": error,
                    "started_at": None,
                },
            )
            logger.info("sync_queue_item_retry", queue_id=queue_id, retry_count=retry_count, error=error)
            return QueueItemStatus.PENDING

        self._patch(
            queue_id,
            {
                "status": QueueItemStatus.FAILED,
                "retry_count": retry_count,
                "last_error": error,
                "failed_at": now or utc_now(),
            },
        )
        logger.warning("sync_queue_item_failed", queue_id=queue_id, retry_count=retry_count, error=error)
        return QueueItemStatus.FAILED

    def clear_stuck(self, now: Optional[datetime] = None) -> int:
        """Return items processing for longer than the timeout to pending."""
        now = now or utc_now()
        cleared = 0
        for item in self._items(QueueItemStatus.PROCESSING):
            if item.started_at is None or now - item.started_at > self.stuck_after:
                self._patch(
                    item.id,
                    {
                        "status": QueueItemStatus.PENDING,
                        "retry_count": item.retry_count + 1,
                        "last_error": "Processing timeout - marked as stuck",
                        "started_at": None,
                    },
                )
                cleared += 1
        if cleared:
            logger.warning("sync_queue_stuck_cleared", cleared=cleared)
        return cleared


class SyncLogBook:
    """Business sync status plus one audit entry per sync attempt."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def mark_started(
        self,
        business_id: str,
        queue_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or utc_now()
        self._store.patch(
            Collections.BUSINESSES, business_id, {"sync_status": SyncStatus.SYNCING, "updated_at": now}
        )
        log = SyncLog(business_id=business_id, queue_id=queue_id, started_at=now)
        self._store.insert(Collections.SYNC_LOGS, log.to_db_row())
        return log.id

    def mark_completed(
        self,
        log_id: str,
        business_id: str,
        result: FetchImportResult,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or utc_now()
        self._store.patch(
            Collections.BUSINESSES,
            business_id,
            {
                "sync_status": SyncStatus.IDLE,
                "last_review_sync": now,
                "last_sync_error": None,
                "updated_at": now,
            },
        )
        self._store.patch(
            Collections.SYNC_LOGS,
            log_id,
            {
                "status": SyncLogStatus.SUCCESS,
                "completed_at": now,
                "reviews_fetched": result.fetched,
                "reviews_filtered": result.filtered,
                "reviews_imported": result.imported,
                "reviews_duplicate": result.duplicates,
            },
        )

    def mark_failed(
        self,
        log_id: str,
        business_id: str,
        error: str,
        result: Optional[FetchImportResult] = None,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or utc_now()
        self._store.patch(
            Collections.BUSINESSES,
            business_id,
            {"sync_status": SyncStatus.ERROR, "last_sync_error": error, "updated_at": now},
        )
        fields = {"status": SyncLogStatus.FAILED, "completed_at": now, "error": error}
        if result is not None:
            fields.update(
                reviews_fetched=result.fetched,
                reviews_filtered=result.filtered,
                reviews_imported=result.imported,
                reviews_duplicate=result.duplicates,
            )
        self._store.patch(Collections.SYNC_LOGS, log_id, fields)

    def history(self, business_id: str, limit: int = 20) -> list[SyncLog]:
        rows = self._store.find(
            Collections.SYNC_LOGS,
            {"business_id": business_id},
            order_by="started_at",
            descending=True,
            limit=limit,
        )
        return [SyncLog.from_db_row(row) for row in rows]

    def recent(self, limit: int = 50) -> list[SyncLog]:
        rows = self._store.find(
            Collections.SYNC_LOGS, order_by="started_at", descending=True, limit=limit
        )
        return [SyncLog.from_db_row(row) for row in rows]
