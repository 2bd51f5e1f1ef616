"""
Tests for review counter repair.
"""

from datetime import datetime, timedelta, timezone

import pytest

from localdirectory.store.base import Collections
from localdirectory.sync.counts import ReviewCountSynchronizer, average_rating


@pytest.fixture
def synchronizer(store):
    return ReviewCountSynchronizer(store, batch_size_limit=20, max_skip=100)


def _make_ordered_businesses(make_business, count):
    """Businesses with strictly increasing created_at."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        make_business(f"Business {i}", created_at=base + timedelta(minutes=i))
        for i in range(count)
    ]


class TestAverageRating:
    """Tests for average_rating."""

    def test_mean(self):
        assert average_rating([4, 5]) == 4.5

    def test_rounds_half_up_to_one_decimal(self):
        # 13 / 3 = 4.333..., 14 / 3 = 4.666...
        assert average_rating([4, 4, 5]) == 4.3
        assert average_rating([4, 5, 5]) == 4.7

    def test_empty(self):
        assert average_rating([]) == 0.0


class TestRepair:
    """Tests for per-business repair."""

    def test_repair_business(self, synchronizer, store, make_business, make_review):
        business = make_business(review_count=10, rating=1.0)
        make_review(business.id, rating=5)
        make_review(business.id, rating=3)

        change = synchronizer.repair_business(business.id)

        assert change.old_count == 10
        assert change.new_count == 2
        assert change.new_rating == 4.0
        row = store.get(Collections.BUSINESSES, business.id)
        assert row["review_count"] == 2
        assert row["rating"] == 4.0

    def test_repair_missing_business(self, synchronizer):
        assert synchronizer.repair_business("missing") is None

    def test_batch_only_patches_changes(self, synchronizer, make_business, make_review):
        correct = make_business("Correct", review_count=1, rating=5.0)
        make_review(correct.id, rating=5)
        drifted = make_business("Drifted", review_count=0, rating=0.0)
        make_review(drifted.id, rating=4)

        result = synchronizer.sync_business_batch([correct.id, drifted.id, "missing"])

        assert result.total == 2
        assert result.updated == 1
        assert result.details[0].business_id == drifted.id
        assert result.details[0].new_count == 1

    def test_batch_is_idempotent(self, synchronizer, make_business, make_review):
        business = make_business(review_count=0)
        make_review(business.id, rating=4)

        synchronizer.sync_business_batch([business.id])
        second = synchronizer.sync_business_batch([business.id])

        assert second.updated == 0


class TestPaging:
    """Tests for business id paging and full sync."""

    def test_id_batch(self, synchronizer, make_business):
        businesses = _make_ordered_businesses(make_business, 5)

        first = synchronizer.get_business_id_batch(batch_size=3)
        second = synchronizer.get_business_id_batch(batch_size=3, skip_count=first.next_skip_count)

        assert first.business_ids == [b.id for b in businesses[:3]]
        assert first.has_more is True
        assert second.business_ids == [b.id for b in businesses[3:]]
        assert second.has_more is False
        assert second.next_skip_count == 5

    def test_batch_size_is_capped(self, synchronizer, make_business):
        _make_ordered_businesses(make_business, 25)

        assert len(synchronizer.get_business_id_batch(batch_size=50).business_ids) == 20

    def test_skip_limit(self, synchronizer):
        batch = synchronizer.get_business_id_batch(skip_count=101)

        assert batch.error is not None
        assert batch.has_more is False
        assert batch.business_ids == []

    def test_sync_all(self, synchronizer, make_business, make_review):
        businesses = _make_ordered_businesses(make_business, 7)
        make_review(businesses[0].id, rating=5)
        make_review(businesses[6].id, rating=2)

        summary = synchronizer.sync_all(batch_size=3)

        assert summary.batches == 3
        assert summary.total == 7
        assert summary.updated == 2


class TestMismatches:
    """Tests for mismatch sampling."""

    def test_check_for_mismatches(self, synchronizer, make_business, make_review):
        drifted = make_business("Drifted")
        make_review(drifted.id)
        make_business("Empty")

        report = synchronizer.check_for_mismatches(sample_size=10)

        assert report.sampled == 2
        assert report.mismatches == 1
        assert report.business_ids == [drifted.id]
        assert report.needs_sync is True

    def test_no_mismatches(self, synchronizer, make_business):
        make_business()

        assert synchronizer.check_for_mismatches().needs_sync is False
