"""End-to-end pipeline tests against the in-memory store.

Covers the complete flow: business import -> CSV review import ->
review source sync -> cross-source duplicate resolution -> counter repair,
with the review source served by httpx.MockTransport.
"""

import httpx
import pytest

from localdirectory.collectors.geoscraper import GeoScraperClient
from localdirectory.config.settings import get_settings
from localdirectory.dedup.pairs import DuplicatePairRef, DuplicateResolver
from localdirectory.importers.businesses import BusinessImporter
from localdirectory.importers.csv_reader import read_reviews_csv
from localdirectory.importers.reviews import ReviewImporter
from localdirectory.models.schemas import IncomingBusiness, IncomingReview
from localdirectory.store.base import Collections
from localdirectory.sync import processor as processor_module
from localdirectory.sync.counts import ReviewCountSynchronizer
from localdirectory.sync.processor import ReviewSyncProcessor

CSV_TEXT = (
    "businessName,businessPhone,placeId,reviewId,rating,comment,userName,reviewDate\n"
    "Joe's Plumbing,(555) 123-4567,,csv-1,5,Fixed our leaking pipe in under an hour.,Alice Smith,2024-05-01T10:00:00Z\n"
    "Joes Plumbing,,,csv-2,4,Fair price and friendly.,Bob,2024-05-02T10:00:00Z\n"
    "Acme Roofing,,place-acme,csv-3,3,Took two visits.,Carol,2024-05-03T10:00:00Z\n"
    "Acme Roofing,,place-acme,csv-3,3,Took two visits.,Carol,2024-05-03T10:00:00Z\n"
    "Nobody Inc,,,csv-4,1,Never heard back.,Dan,2024-05-04T10:00:00Z\n"
)

API_PAGE = [
    {
        "review_id": "api-1",
        "rating": 5,
        "snippet": "Fixed our leaking pipe in under an hour.",
        "user": {"name": "Alice Smith"},
        "publishedAtDate_timestamp": 1714557600000,
    },
    {
        "review_id": "api-2",
        "rating": 2,
        "snippet": "",
        "user": {"name": "Eve"},
    },
]


@pytest.fixture(autouse=True)
def no_import_pause(monkeypatch):
    monkeypatch.setattr(processor_module, "IMPORT_PAUSE_SECONDS", 0)


@pytest.fixture
def directory(store):
    """Two listings created through the business importer."""
    BusinessImporter(store).import_batch(
        [
            IncomingBusiness(name="Joe's Plumbing LLC", phone="555-123-4567", place_id="place-joe"),
            IncomingBusiness(name="Acme Roofing", place_id="place-acme"),
        ]
    )
    return {
        row["place_id"]: row["id"]
        for row in store.find(Collections.BUSINESSES)
    }


def _review_source_factory():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=API_PAGE)

    return lambda: GeoScraperClient(
        api_token="test-token",
        api_url="https://geoscraper.test/google/map/review",
        page_delay=0,
        transport=httpx.MockTransport(handler),
    )


class TestReviewPipeline:
    """Test the import, sync, dedup and repair stages working together."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, store, directory, tmp_path):
        joe_id = directory["place-joe"]
        acme_id = directory["place-acme"]

        # CSV import with full matching
        csv_path = tmp_path / "reviews.csv"
        csv_path.write_text(CSV_TEXT, encoding="utf-8")
        records = read_reviews_csv(csv_path).records
        imported = ReviewImporter(store).batch_import(
            records, source="gmb_import", source_metadata={"file_name": "reviews.csv"}
        )

        assert imported.successful == 3
        assert imported.duplicates == 1
        assert imported.failed == 1
        assert imported.business_matches == {"name_phone": 1, "fuzzy_name": 1, "place_id": 2}
        assert store.get(Collections.BUSINESSES, joe_id)["review_count"] == 2

        # Review source sync brings the same review in under a new id
        processor = ReviewSyncProcessor(
            store, client_factory=_review_source_factory(), settings=get_settings()
        )
        queue_id, _ = processor.queue.add(joe_id, "place-joe")
        outcome = await processor.process_item(queue_id)

        assert outcome.status == "completed"
        assert outcome.result.fetched == 2
        assert outcome.result.skipped == 1
        # Same author and near-identical text: caught at import time
        assert outcome.result.imported == 0
        assert outcome.result.duplicates == 1

        # Nothing left for the resolver on Joe's listing
        resolver = DuplicateResolver(store)
        assert resolver.find_duplicates(joe_id).duplicate_count == 0

        # Counters already agree with the reviews
        repair = ReviewCountSynchronizer(store).sync_business_batch([joe_id, acme_id])
        assert repair.updated == 0
        assert store.get(Collections.BUSINESSES, acme_id)["rating"] == 3.0

    @pytest.mark.asyncio
    async def test_cross_source_copy_is_resolved(self, store, directory):
        joe_id = directory["place-joe"]

        # A manual entry of the same review slips past import-time checks
        # because the author name is spelled differently
        manual = ReviewImporter(store).import_prematched(
            records=[
                IncomingReview(
                    business_id=joe_id,
                    review_id="manual-1",
                    rating=5,
                    comment="Fixed our leaking pipe in under an hour.",
                    user_name="A. Smith",
                    original_create_time="2024-05-01T12:00:00Z",
                )
            ],
            source="manual",
        )
        assert manual.created == 1

        processor = ReviewSyncProcessor(
            store, client_factory=_review_source_factory(), settings=get_settings()
        )
        synced = await processor.sync_business_now(joe_id)
        assert synced.imported == 1

        resolver = DuplicateResolver(store)
        report = resolver.find_duplicates(joe_id)
        assert report.duplicate_count == 1

        pair = report.duplicates[0]
        resolution = resolver.resolve(
            [DuplicatePairRef(primary_id=pair.primary.id, duplicate_id=pair.duplicate.id)]
        )

        assert resolution.removed == 1
        visible = store.find(Collections.REVIEWS, {"business_id": joe_id, "is_displayed": True})
        assert [row["source"] for row in visible] == ["gmb_api"]


