"""
Tests for the GEOscraper review collector.

HTTP is served by httpx.MockTransport; only non-retried status codes are
used so tenacity never sleeps.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from localdirectory.collectors.geoscraper import (
    GeoScraperClient,
    split_page,
    transform_review,
)
from localdirectory.core.circuit_breaker import CircuitState, get_circuit_breaker
from localdirectory.core.exceptions import (
    CircuitBreakerOpenError,
    ConfigurationError,
    ReviewSourceAuthError,
    ReviewSourceNotFoundError,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
TOKEN = "CAESBkVnSUlDZw-next-page"


def _raw(i: int) -> dict:
    return {
        "review_id": f"g{i}",
        "rating": 5,
        "snippet": f"Review number {i}",
        "user": {"name": f"User {i}"},
    }


def _client(handler, **kwargs) -> GeoScraperClient:
    return GeoScraperClient(
        api_token="test-token",
        api_url="https://geoscraper.test/google/map/review",
        page_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestSplitPage:
    """Tests for separating reviews from the pagination trailer."""

    def test_string_token(self):
        reviews, token = split_page([_raw(1), _raw(2), TOKEN])

        assert [r["review_id"] for r in reviews] == ["g1", "g2"]
        assert token == TOKEN

    @pytest.mark.parametrize("key", ["token", "next_page_token", "nextToken"])
    def test_object_token(self, key):
        reviews, token = split_page([_raw(1), {key: "abc"}])

        assert len(reviews) == 1
        assert token == "abc"

    def test_short_string_is_not_a_token(self):
        reviews, token = split_page([_raw(1), "short"])

        assert token is None
        assert len(reviews) == 1

    def test_last_review_is_not_a_token(self):
        """A review object never doubles as the pagination trailer."""
        reviews, token = split_page([_raw(1), _raw(2)])

        assert token is None
        assert len(reviews) == 2

    def test_wrapped_formats(self):
        assert len(split_page({"data": [_raw(1)]})[0]) == 1
        assert len(split_page({"reviews": [_raw(1), _raw(2)]})[0]) == 2

    @pytest.mark.parametrize("data", [[], {}, None, "text"])
    def test_empty_or_unknown(self, data):
        assert split_page(data) == ([], None)


class TestTransformReview:
    """Tests for raw review to record mapping."""

    def test_nested_format(self):
        raw = {
            "review_id": "g1",
            "rating": 4,
            "snippet": "Great service",
            "user": {"name": "Alice", "thumbnail": "https://img/a.png", "link": "https://maps/a"},
            "owner_response": {"text": "Thank you!", "date": "2024-05-02T00:00:00Z"},
            "publishedAtDate_timestamp": 1700000000000,
        }

        record = transform_review(raw, "biz-1", now=NOW)

        assert record.business_id == "biz-1"
        assert record.user_name == "Alice"
        assert record.author_photo_url == "https://img/a.png"
        assert record.source_url == "https://maps/a"
        assert record.source == "gmb_api"
        assert record.verified is True
        assert record.original_create_time == "2023-11-14T22:13:20+00:00"
        assert record.reply_text == "Thank you!"
        assert record.reply_created_at == "2024-05-02T00:00:00+00:00"

    def test_flat_format(self):
        raw = {
            "review_id": "g2",
            "rating": 3,
            "text": "Okay",
            "user_name": "Bob",
            "user_thumbnail": "https://img/b.png",
            "owner_response_text": "Noted",
        }

        record = transform_review(raw, "biz-1", now=NOW)

        assert record.comment == "Okay"
        assert record.user_name == "Bob"
        assert record.reply_text == "Noted"
        assert record.reply_created_at == NOW.isoformat()
        assert record.original_create_time == NOW.isoformat()

    def test_microsecond_timestamp(self):
        record = transform_review({"rating": 5, "publishedAtDate_timestamp": 1700000000000000}, "b", now=NOW)

        assert record.original_create_time == "2023-11-14T22:13:20+00:00"

    def test_generated_review_id(self):
        record = transform_review({"rating": 5, "user_name": "Alice  Smith"}, "biz-1", now=NOW)

        assert record.review_id == f"geo_biz-1_Alice_Smith_{int(NOW.timestamp() * 1000)}_0"

    def test_missing_fields(self):
        record = transform_review({}, "biz-1", now=NOW)

        assert record.user_name == "Anonymous"
        assert record.rating == 0
        assert record.comment == ""
        assert record.reply_text is None
        assert record.reply_created_at is None


class TestGeoScraperClient:
    """Tests for paginated fetching."""

    def test_requires_token(self, monkeypatch):
        class NoToken:
            geoscraper_api_token = None

        monkeypatch.setattr(
            "localdirectory.collectors.geoscraper.get_settings", lambda: NoToken()
        )

        with pytest.raises(ConfigurationError):
            GeoScraperClient()

    @pytest.mark.asyncio
    async def test_follows_pages_until_token_runs_out(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            requests.append(body)
            if "token" not in body:
                return httpx.Response(200, json=[_raw(i) for i in range(10)] + [TOKEN])
            return httpx.Response(200, json=[_raw(10), _raw(11)])

        async with _client(handler) as client:
            fetched = await client.fetch_reviews("place-1", max_reviews=50)

        assert fetched.pages == 2
        assert len(fetched.reviews) == 12
        assert requests[0] == {"data_id": "place-1", "sort_by": "newest", "hl": "en"}
        assert requests[1]["token"] == TOKEN

    @pytest.mark.asyncio
    async def test_sends_token_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["token"] = request.headers.get("X-Berserker-Token")
            return httpx.Response(200, json=[])

        async with _client(handler) as client:
            fetched = await client.fetch_reviews("place-1")

        assert seen["token"] == "test-token"
        assert fetched.pages == 1
        assert fetched.reviews == []

    @pytest.mark.asyncio
    async def test_stops_at_max_reviews(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[_raw(i) for i in range(10)] + [TOKEN])

        async with _client(handler) as client:
            fetched = await client.fetch_reviews("place-1", max_reviews=15)

        assert len(calls) == 2
        assert len(fetched.reviews) == 15

    @pytest.mark.asyncio
    async def test_not_found_does_not_trip_breaker(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "not found"})

        async with _client(handler) as client:
            with pytest.raises(ReviewSourceNotFoundError):
                await client.fetch_reviews("bad-place")

        breaker = get_circuit_breaker("geoscraper")
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        async with _client(handler) as client:
            with pytest.raises(ReviewSourceAuthError):
                await client.fetch_page("place-1")

        assert get_circuit_breaker("geoscraper").failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_without_calling(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[])

        breaker = get_circuit_breaker("geoscraper")
        for _ in range(breaker.failure_threshold):
            await breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

        async with _client(handler) as client:
            with pytest.raises(CircuitBreakerOpenError):
                await client.fetch_page("place-1")

        assert calls == []
