"""Review sync processing.

Drains the review sync queue: each item fetches a business's newest reviews
from the review source, drops the ones without text, and imports the rest
through the prematched importer. Queue items and the sync log are updated
on both success and failure.

The scheduled entry points (daily sync, hourly refill) only decide which
businesses go into the queue; process_queue does the actual work.
"""

import asyncio
from typing import Callable, Optional

import structlog

from localdirectory.collectors.geoscraper import GeoScraperClient, transform_review
from localdirectory.config.settings import Settings, get_settings
from localdirectory.core.exceptions import DirectoryError, DocumentNotFoundError, MissingPlaceIdError
from localdirectory.importers.reviews import ReviewImporter
from localdirectory.models.results import (
    DailySyncResult,
    FetchImportResult,
    ProcessItemResult,
    QueueProcessResult,
    RefillResult,
)
from localdirectory.models.schemas import Business, QueueItemStatus, utc_now
from localdirectory.monitoring.metrics import (
    record_import_outcome,
    set_queue_depth,
    track_sync_item,
)
from localdirectory.store.base import Collections, DocumentStore, chunked
from localdirectory.sync.queue import QueueRequest, ReviewSyncQueue, SyncLogBook
from localdirectory.sync.selection import select_businesses_for_sync

logger = structlog.get_logger(__name__)

IMPORT_PAUSE_SECONDS = 0.1

DAILY_SELECTION_LIMIT = 100
DAILY_PRIORITY = 5
DAILY_MAX_ITEMS = 20

REFILL_SKIP_AT = 500
REFILL_TARGET = 600
REFILL_MAX_ADD = 300
REFILL_CHUNK = 50
REFILL_PRIORITY = 7


class ReviewSyncProcessor:
    """Fetch-and-import worker over the review sync queue."""

    def __init__(
        self,
        store: DocumentStore,
        client_factory: Optional[Callable[[], GeoScraperClient]] = None,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._client_factory = client_factory or GeoScraperClient
        self.queue = ReviewSyncQueue(
            store,
            max_concurrent=self._settings.max_concurrent_syncs,
            max_retries=self._settings.queue_max_retries,
            stuck_after_seconds=self._settings.queue_stuck_after_seconds,
            bulk_add_limit=self._settings.queue_bulk_add_limit,
        )
        self.logs = SyncLogBook(store)
        self.importer = ReviewImporter(
            store,
            name_threshold=self._settings.name_match_threshold,
            content_threshold=self._settings.content_match_threshold,
        )

    # -------------------------------------------------------------------------
    # Single business
    # -------------------------------------------------------------------------

    async def fetch_and_import(
        self,
        business_id: str,
        place_id: str,
        max_reviews: Optional[int] = None,
    ) -> FetchImportResult:
        """Fetch up to max_reviews reviews for a place and import them.

        Review source failures are reported in the result instead of raised.
        """
        max_reviews = max_reviews or self._settings.max_reviews_per_business
        result = FetchImportResult()

        try:
            async with self._client_factory() as client:
                fetched = await client.fetch_reviews(place_id, max_reviews=max_reviews)
        except DirectoryError as e:
            logger.warning(
                "review_fetch_failed", business_id=business_id, place_id=place_id, error=str(e)
            )
            result.error = str(e)
            return result

        now = utc_now()
        result.fetched = len(fetched.reviews)
        result.pages = fetched.pages
        records = [
            record.model_copy(update={"place_id": place_id})
            for record in (
                transform_review(raw, business_id, now, position)
                for position, raw in enumerate(fetched.reviews)
            )
            if record.comment.strip()
        ]
        result.filtered = len(records)
        result.skipped = result.fetched - result.filtered

        chunk_size = self._settings.review_import_batch_size
        for position, chunk in enumerate(chunked(records, chunk_size)):
            if position:
                await asyncio.sleep(IMPORT_PAUSE_SECONDS)
            imported = self.importer.import_prematched(chunk)
            result.imported += imported.created
            result.duplicates += imported.duplicates
            result.failed += imported.failed

        result.success = True
        record_import_outcome("sync", "skipped_empty", result.skipped)
        logger.info(
            "review_sync_imported",
            business_id=business_id,
            fetched=result.fetched,
            filtered=result.filtered,
            imported=result.imported,
            duplicates=result.duplicates,
            pages=result.pages,
        )
        return result

    async def sync_business_now(self, business_id: str) -> FetchImportResult:
        """Sync one business immediately, outside the queue.

        Raises:
            DocumentNotFoundError: Unknown business.
            MissingPlaceIdError: The business has no place id to fetch by.
        """
        row = self._store.get(Collections.BUSINESSES, business_id)
        if row is None:
            raise DocumentNotFoundError(Collections.BUSINESSES, business_id)
        business = Business.from_db_row(row)
        if not business.place_id:
            raise MissingPlaceIdError(business_id)

        log_id = self.logs.mark_started(business_id)
        try:
            result = await self.fetch_and_import(business_id, business.place_id)
        except Exception as e:
            self.logs.mark_failed(log_id, business_id, str(e))
            raise
        if result.success:
            self.logs.mark_completed(log_id, business_id, result)
        else:
            self.logs.mark_failed(log_id, business_id, result.error or "Unknown error", result)
        return result

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    async def process_item(self, queue_id: str) -> ProcessItemResult:
        """Run the sync for one pending queue item.

        Raises:
            DocumentNotFoundError: Unknown queue item.
        """
        item = self.queue.get(queue_id)
        if item is None:
            raise DocumentNotFoundError(Collections.SYNC_QUEUE, queue_id)
        if item.status != QueueItemStatus.PENDING:
            logger.info("sync_queue_item_not_pending", queue_id=queue_id, status=item.status.value)
            return ProcessItemResult(queue_id=queue_id, status="skipped", message="Not pending")

        log_id: Optional[str] = None
        try:
            self.queue.mark_processing(queue_id)
            log_id = self.logs.mark_started(item.business_id, queue_id)

            with track_sync_item() as ctx:
                result = await self.fetch_and_import(item.business_id, item.place_id)
                ctx["status"] = "success" if result.success else "failed"

            if result.success:
                self.queue.mark_completed(queue_id, result)
                self.logs.mark_completed(log_id, item.business_id, result)
                return ProcessItemResult(queue_id=queue_id, status="completed", result=result)

            error = result.error or "Unknown error"
            self.queue.mark_failed(queue_id, error)
            self.logs.mark_failed(log_id, item.business_id, error, result)
            return ProcessItemResult(queue_id=queue_id, status="failed", result=result, message=error)

        except Exception as e:
            logger.exception("sync_queue_item_error", queue_id=queue_id, business_id=item.business_id)
            try:
                self.queue.mark_failed(queue_id, str(e))
                if log_id is not None:
                    self.logs.mark_failed(log_id, item.business_id, str(e))
            except DirectoryError as update_error:
                logger.error("sync_queue_status_update_failed", queue_id=queue_id, error=str(update_error))
            raise

    async def process_queue(self, max_items: int = 10) -> QueueProcessResult:
        """Process up to max_items pending items concurrently, within the free slots."""
        pending = self.queue.pending_count()
        processing = self.queue.processing_count()
        set_queue_depth(QueueItemStatus.PENDING.value, pending)
        set_queue_depth(QueueItemStatus.PROCESSING.value, processing)
        logger.info("sync_queue_processing_started", pending=pending, processing=processing, max_items=max_items)

        if processing >= self.queue.max_concurrent:
            return QueueProcessResult(
                remaining=pending,
                processing=processing,
                message="Max concurrent connections reached",
            )

        items = self.queue.next_items(limit=max_items)
        if not items:
            return QueueProcessResult(remaining=pending, processing=processing, message="Queue empty")

        outcomes = await asyncio.gather(
            *(self.process_item(item.id) for item in items), return_exceptions=True
        )
        result = QueueProcessResult(
            processed=sum(1 for o in outcomes if not isinstance(o, BaseException)),
            failed=sum(1 for o in outcomes if isinstance(o, BaseException)),
            remaining=self.queue.pending_count(),
            processing=self.queue.processing_count(),
        )
        logger.info(
            "sync_queue_processing_completed",
            processed=result.processed,
            failed=result.failed,
            remaining=result.remaining,
        )
        return result

    # -------------------------------------------------------------------------
    # Scheduled jobs
    # -------------------------------------------------------------------------

    async def daily_review_sync(self) -> DailySyncResult:
        businesses = select_businesses_for_sync(self._store, limit=DAILY_SELECTION_LIMIT)
        result = DailySyncResult(selected=len(businesses))
        if not businesses:
            logger.info("daily_review_sync_nothing_to_do")
            return result

        requests = [QueueRequest(business_id=b.id, place_id=b.place_id) for b in businesses]
        for chunk in chunked(requests, self.queue.bulk_add_limit):
            added = self.queue.bulk_add(chunk, priority=DAILY_PRIORITY)
            result.queued += added.added
            result.skipped += added.skipped

        result.processing = await self.process_queue(max_items=DAILY_MAX_ITEMS)
        logger.info(
            "daily_review_sync_completed",
            selected=result.selected,
            queued=result.queued,
            processed=result.processing.processed,
        )
        return result

    async def hourly_queue_refill(self) -> RefillResult:
        """Top the queue up towards the overnight target, including already-synced businesses."""
        pending = self.queue.pending_count()
        result = RefillResult(pending_before=pending)
        if pending >= REFILL_SKIP_AT:
            result.reason = f"Queue has sufficient items ({pending}), skipping refill"
            return result

        target = min(REFILL_TARGET - pending, REFILL_MAX_ADD)
        businesses = select_businesses_for_sync(self._store, limit=target, include_existing=True)
        if not businesses:
            result.reason = "No businesses available to add"
            return result

        requests = [QueueRequest(business_id=b.id, place_id=b.place_id) for b in businesses]
        for chunk in chunked(requests, REFILL_CHUNK):
            added = self.queue.bulk_add(chunk, priority=REFILL_PRIORITY)
            result.added += added.added
            result.skipped += added.skipped

        logger.info("hourly_queue_refill_completed", pending_before=pending, added=result.added)
        return result

    def clear_stuck(self) -> int:
        return self.queue.clear_stuck()
