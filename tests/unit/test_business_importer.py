"""
Tests for bulk business listing import.
"""

import pytest

from localdirectory.importers.businesses import BusinessImporter, slugify
from localdirectory.models.schemas import IncomingBusiness
from localdirectory.store.base import Collections


@pytest.fixture
def importer(store):
    return BusinessImporter(store)


class TestSlugify:
    """Tests for slug generation."""

    def test_slugify(self):
        assert slugify("Joe's Plumbing & Heating") == "joe-s-plumbing-heating"

    def test_slugify_trims_dashes(self):
        assert slugify("  --Acme!! ") == "acme"


class TestImportBatch:
    """Tests for BusinessImporter.import_batch."""

    def test_creates_listings_with_defaults(self, importer, store):
        result = importer.import_batch(
            [IncomingBusiness(name="Acme Roofing", place_id="place-acme", rating=4.2)],
            import_source="gmb_scrape",
        )

        assert result.total_processed == 1
        assert result.new_businesses_added == 1
        row = store.find_one(Collections.BUSINESSES, {"slug": "acme-roofing"})
        assert row["plan_tier"] == "free"
        assert row["active"] is True
        assert row["rating"] == 4.2
        assert row["review_count"] == 0
        assert row["data_source"]["primary"] == "gmb_scrape"

    def test_skips_existing_slug_and_place_id(self, importer, make_business):
        make_business("Acme Roofing", slug="acme-roofing")
        make_business("Other", slug="other", place_id="place-taken")

        result = importer.import_batch(
            [
                IncomingBusiness(name="Acme Roofing"),
                IncomingBusiness(name="Brand New", place_id="place-taken"),
                IncomingBusiness(name="Fresh Listing"),
            ]
        )

        assert result.new_businesses_added == 1
        assert result.existing_businesses_skipped == 2

    def test_skips_repeats_within_batch(self, importer, store):
        result = importer.import_batch(
            [
                IncomingBusiness(name="Acme Roofing", place_id="p1"),
                IncomingBusiness(name="Acme Roofing Two", place_id="p1"),
                IncomingBusiness(name="Acme Roofing"),
            ]
        )

        assert result.new_businesses_added == 1
        assert result.existing_businesses_skipped == 2
        assert store.count(Collections.BUSINESSES) == 1

    def test_skip_duplicate_check(self, importer, store, make_business):
        make_business("Acme Roofing", slug="acme-roofing")

        result = importer.import_batch(
            [IncomingBusiness(name="Acme Roofing")], skip_duplicate_check=True
        )

        assert result.new_businesses_added == 1
        assert store.count(Collections.BUSINESSES) == 2


class TestStatsAndClear:
    """Tests for stats and clear_all."""

    def test_stats(self, importer, make_business):
        make_business("A", place_id="p1", rating=4.0, review_count=3, data_source={"primary": "csv"})
        make_business("B", rating=5.0, review_count=1, data_source={"primary": "csv"})
        make_business("C")
        make_business("D", place_id="p2")

        stats = importer.stats(sample_size=100)

        assert stats.total_businesses == 4
        assert stats.sample_size == 4
        assert stats.average_rating == 4.5
        assert stats.with_place_id_percent == 50.0
        assert stats.with_reviews_percent == 50.0
        assert stats.source_distribution == {"csv": 2, "unknown": 2}

    def test_stats_empty(self, importer):
        stats = importer.stats()

        assert stats.total_businesses == 0
        assert stats.sample_size == 0

    def test_clear_requires_confirmation(self, importer, store, make_business):
        make_business()

        assert importer.clear_all() is None
        assert store.count(Collections.BUSINESSES) == 1

    def test_clear_all(self, importer, store, make_business):
        make_business("A")
        make_business("B")

        assert importer.clear_all(confirm=True) == 2
        assert store.count(Collections.BUSINESSES) == 0
