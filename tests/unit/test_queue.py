"""
Tests for the review sync queue and the sync log book.
"""

from datetime import timedelta

import pytest

from localdirectory.core.exceptions import BatchLimitError, DocumentNotFoundError
from localdirectory.models.results import FetchImportResult
from localdirectory.models.schemas import QueueItemStatus
from localdirectory.store.base import Collections
from localdirectory.sync.queue import QueueRequest, ReviewSyncQueue, SyncLogBook


@pytest.fixture
def queue(store):
    return ReviewSyncQueue(store, max_concurrent=3, max_retries=3, stuck_after_seconds=300, bulk_add_limit=5)


class TestEnqueue:
    """Tests for add and bulk_add."""

    def test_add_is_idempotent(self, queue, store):
        first_id, created = queue.add("biz-1", "place-1")
        second_id, created_again = queue.add("biz-1", "place-1", priority=9)

        assert created is True
        assert created_again is False
        assert second_id == first_id
        assert store.count(Collections.SYNC_QUEUE) == 1

    def test_add_after_completion_creates_new_item(self, queue):
        first_id, _ = queue.add("biz-1", "place-1")
        queue.mark_processing(first_id)
        queue.mark_completed(first_id, FetchImportResult(success=True))

        second_id, created = queue.add("biz-1", "place-1")

        assert created is True
        assert second_id != first_id

    def test_processing_item_blocks_add(self, queue):
        queue_id, _ = queue.add("biz-1", "place-1")
        queue.mark_processing(queue_id)

        assert queue.add("biz-1", "place-1") == (queue_id, False)

    def test_bulk_add(self, queue):
        queue.add("biz-1", "place-1")

        result = queue.bulk_add(
            [QueueRequest(business_id=f"biz-{i}", place_id=f"place-{i}") for i in range(1, 4)],
            priority=7,
        )

        assert result.added == 2
        assert result.skipped == 1
        assert len(result.queue_ids) == 2
        assert queue.get(result.queue_ids[0]).priority == 7

    def test_bulk_add_limit(self, queue):
        requests = [QueueRequest(business_id=f"biz-{i}", place_id="p") for i in range(6)]

        with pytest.raises(BatchLimitError):
            queue.bulk_add(requests)


class TestNextItems:
    """Tests for slot-limited dequeueing."""

    def test_priority_then_age(self, queue, fixed_now):
        low, _ = queue.add("low", "p", priority=2, now=fixed_now)
        old_high, _ = queue.add("old-high", "p", priority=8, now=fixed_now)
        new_high, _ = queue.add("new-high", "p", priority=8, now=fixed_now + timedelta(minutes=1))

        assert [i.id for i in queue.next_items()] == [old_high, new_high, low]

    def test_only_free_slots(self, queue):
        for i in range(5):
            queue.add(f"biz-{i}", "p")
        busy = queue.next_items(limit=2)
        for item in busy:
            queue.mark_processing(item.id)

        assert len(queue.next_items()) == 1

    def test_full_means_nothing(self, queue):
        for i in range(4):
            queue.add(f"biz-{i}", "p")
        for item in queue.next_items():
            queue.mark_processing(item.id)

        assert queue.processing_count() == 3
        assert queue.next_items() == []

    def test_negative_priority_is_paused(self, queue):
        queue.add("paused", "p", priority=-1)

        assert queue.next_items() == []
        assert queue.pending_count() == 1


class TestTransitions:
    """Tests for retries, failure and stuck recovery."""

    def test_retry_then_fail(self, queue):
        queue_id, _ = queue.add("biz-1", "p")

        assert queue.mark_failed(queue_id, "boom") == QueueItemStatus.PENDING
        assert queue.mark_failed(queue_id, "boom") == QueueItemStatus.PENDING
        assert queue.mark_failed(queue_id, "boom") == QueueItemStatus.FAILED

        item = queue.get(queue_id)
        assert item.retry_count == 3
        assert item.last_error == "boom"
        assert item.failed_at is not None

    def test_mark_failed_missing(self, queue):
        with pytest.raises(DocumentNotFoundError):
            queue.mark_failed("missing", "boom")

    def test_mark_completed_records_results(self, queue):
        queue_id, _ = queue.add("biz-1", "p")

        queue.mark_completed(queue_id, FetchImportResult(success=True, fetched=12, filtered=10, imported=7, skipped=2))

        item = queue.get(queue_id)
        assert item.status == QueueItemStatus.COMPLETED
        assert item.results == {"fetched": 12, "filtered": 10, "imported": 7, "skipped": 2}

    def test_clear_stuck(self, queue, fixed_now):
        stuck, _ = queue.add("stuck", "p")
        fresh, _ = queue.add("fresh", "p")
        queue.mark_processing(stuck, now=fixed_now - timedelta(minutes=10))
        queue.mark_processing(fresh, now=fixed_now - timedelta(minutes=1))

        assert queue.clear_stuck(now=fixed_now) == 1

        item = queue.get(stuck)
        assert item.status == QueueItemStatus.PENDING
        assert item.retry_count == 1
        assert item.started_at is None
        assert queue.get(fresh).status == QueueItemStatus.PROCESSING

    def test_status(self, queue, fixed_now):
        queue.add("old", "p", now=fixed_now - timedelta(days=2))
        queue.add("new", "p", now=fixed_now - timedelta(hours=1))
        done, _ = queue.add("done", "p", now=fixed_now)
        busy, _ = queue.add("busy", "p", now=fixed_now)
        queue.mark_completed(done, FetchImportResult(success=True), now=fixed_now)
        queue.mark_processing(busy, now=fixed_now)

        status = queue.status(now=fixed_now)

        assert status.pending == 1
        assert status.processing == 1
        assert status.completed_recent == 1
        assert status.failed_recent == 0
        assert status.available_slots == 2
        assert queue.pending_count() == 2


class TestSyncLogBook:
    """Tests for business sync status and audit entries."""

    def test_started_then_completed(self, store, make_business):
        business = make_business()
        logs = SyncLogBook(store)

        log_id = logs.mark_started(business.id, queue_id="q-1")
        assert store.get(Collections.BUSINESSES, business.id)["sync_status"] == "syncing"

        logs.mark_completed(log_id, business.id, FetchImportResult(success=True, fetched=5, imported=3))

        row = store.get(Collections.BUSINESSES, business.id)
        assert row["sync_status"] == "idle"
        assert row["last_review_sync"] is not None
        entry = logs.history(business.id)[0]
        assert entry.status.value == "success"
        assert entry.queue_id == "q-1"
        assert entry.reviews_imported == 3

    def test_failed(self, store, make_business):
        business = make_business()
        logs = SyncLogBook(store)

        log_id = logs.mark_started(business.id)
        logs.mark_failed(log_id, business.id, "source down")

        row = store.get(Collections.BUSINESSES, business.id)
        assert row["sync_status"] == "error"
        assert row["last_sync_error"] == "source down"
        assert logs.history(business.id)[0].error == "source down"

    def test_history_newest_first(self, store, make_business, fixed_now):
        business = make_business()
        logs = SyncLogBook(store)
        older = logs.mark_started(business.id, now=fixed_now - timedelta(hours=2))
        newer = logs.mark_started(business.id, now=fixed_now)

        assert [entry.id for entry in logs.history(business.id)] == [newer, older]
        assert len(logs.recent(limit=1)) == 1
