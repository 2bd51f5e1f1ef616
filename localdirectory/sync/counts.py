"""Aggregate counter repair.

Every business carries a denormalized review_count and average rating. The
importers update them after each insert, but partial failures and manual
edits let them drift. This module recounts from the reviews themselves and
patches only the businesses whose stored values are wrong.

Usage:
    sync = ReviewCountSynchronizer(store)
    report = sync.check_for_mismatches(sample_size=20)
    if report.needs_sync:
        summary = sync.sync_all(batch_size=5)
"""

import math
from datetime import datetime
from typing import Iterable, Optional

import structlog

from localdirectory.models.results import (
    BusinessIdBatch,
    CountChange,
    CountSyncResult,
    CountSyncSummary,
    MismatchReport,
)
from localdirectory.models.schemas import Business, utc_now
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)


def average_rating(ratings: Iterable[float]) -> float:
    """Mean rounded half-up to one decimal; 0 when there are no ratings."""
    values = [float(r) for r in ratings]
    if not values:
        return 0.0
    return math.floor(sum(values) / len(values) * 10 + 0.5) / 10


class ReviewCountSynchronizer:
    """Recompute review_count and rating for businesses from their reviews."""

    def __init__(
        self,
        store: DocumentStore,
        batch_size_limit: int = 20,
        max_skip: int = 100,
    ):
        self._store = store
        self.batch_size_limit = batch_size_limit
        self.max_skip = max_skip

    def compute_stats(self, business_id: str) -> tuple[int, float]:
        count = self._store.count(Collections.REVIEWS, {"business_id": business_id})
        reviews = self._store.find(Collections.REVIEWS, {"business_id": business_id})
        return count, average_rating(r["rating"] for r in reviews if r.get("rating") is not None)

    def repair_business(
        self, business_id: str, now: Optional[datetime] = None
    ) -> Optional[CountChange]:
        """Unconditionally write fresh counters for one business.

        Returns None when the business does not exist.
        """
        row = self._store.get(Collections.BUSINESSES, business_id)
        if row is None:
            return None
        business = Business.from_db_row(row)
        count, rating = self.compute_stats(business_id)
        self._store.patch(
            Collections.BUSINESSES,
            business_id,
            {"review_count": count, "rating": rating, "updated_at": now or utc_now()},
        )
        return CountChange(
            business_id=business_id,
            business_name=business.name,
            old_count=business.review_count,
            new_count=count,
            old_rating=business.rating,
            new_rating=rating,
        )

    def sync_business_batch(self, business_ids: list[str]) -> CountSyncResult:
        """Recount each business; patch only those whose counters changed."""
        result = CountSyncResult()

        for business_id in business_ids:
            try:
                row = self._store.get(Collections.BUSINESSES, business_id)
                if row is None:
                    logger.warning("count_sync_business_missing", business_id=business_id)
                    continue
                result.total += 1
                business = Business.from_db_row(row)
                count, rating = self.compute_stats(business_id)

                if business.review_count == count and business.rating == rating:
                    continue

                self._store.patch(
                    Collections.BUSINESSES,
                    business_id,
                    {"review_count": count, "rating": rating, "updated_at": utc_now()},
                )
                result.updated += 1
                result.details.append(
                    CountChange(
                        business_id=business_id,
                        business_name=business.name,
                        old_count=business.review_count,
                        new_count=count,
                        old_rating=business.rating,
                        new_rating=rating,
                    )
                )
            except Exception as e:
                result.errors += 1
                logger.error("count_sync_failed", business_id=business_id, error=str(e))

        logger.info(
            "count_sync_batch_completed",
            total=result.total,
            updated=result.updated,
            errors=result.errors,
        )
        return result

    def _page(self, offset: int, limit: int) -> list[str]:
        rows = self._store.find(
            Collections.BUSINESSES,
            order_by="created_at",
            limit=limit,
            offset=offset,
        )
        return [row["id"] for row in rows]

    def get_business_id_batch(self, batch_size: int = 10, skip_count: int = 0) -> BusinessIdBatch:
        """Page of business ids in creation order, for callers driving the repair."""
        if skip_count > self.max_skip:
            return BusinessIdBatch(
                has_more=False,
                next_skip_count=skip_count,
                error=f"Cannot skip more than {self.max_skip} businesses at once",
            )
        size = max(1, min(batch_size, self.batch_size_limit))
        ids = self._page(skip_count, size)
        return BusinessIdBatch(
            business_ids=ids,
            has_more=len(ids) == size,
            next_skip_count=skip_count + len(ids),
        )

    def check_for_mismatches(self, sample_size: int = 10) -> MismatchReport:
        """Sample businesses and count those showing zero reviews that do have some."""
        rows = self._store.find(Collections.BUSINESSES, limit=sample_size)
        report = MismatchReport(sampled=len(rows))
        for row in rows:
            if row.get("review_count"):
                continue
            if self._store.find_one(Collections.REVIEWS, {"business_id": row["id"]}):
                report.mismatches += 1
                report.business_ids.append(row["id"])
        logger.info(
            "count_mismatch_check",
            sampled=report.sampled,
            mismatches=report.mismatches,
        )
        return report

    def sync_all(self, batch_size: int = 5) -> CountSyncSummary:
        """Walk every business in creation order, one small batch at a time."""
        summary = CountSyncSummary()
        offset = 0
        size = max(1, min(batch_size, self.batch_size_limit))

        while True:
            ids = self._page(offset, size)
            if not ids:
                break
            batch = self.sync_business_batch(ids)
            summary.batches += 1
            summary.total += batch.total
            summary.updated += batch.updated
            summary.errors += batch.errors
            offset += len(ids)
            if len(ids) < size:
                break

        logger.info(
            "count_sync_all_completed",
            batches=summary.batches,
            total=summary.total,
            updated=summary.updated,
            errors=summary.errors,
        )
        return summary
