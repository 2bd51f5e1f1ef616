"""GEOscraper Google Maps review collector.

Fetches the newest reviews of a place by its place id, following the
pagination token the API appends to each page, and turns the raw review
objects into IncomingReview records for the importer.

API: POST https://api.geoscraper.net/google/map/review
     body {"data_id": <place id>, "sort_by": "newest", "hl": "en", "token": <page token>}
     header X-Berserker-Token: <api token>

Pagination: a page is normally a JSON array of reviews whose last element is
the token for the next page, either a bare string or an object carrying
token / next_page_token / nextToken. A page without such a trailer is the last.

Example:
    async with GeoScraperClient() as client:
        fetched = await client.fetch_reviews("ChIJN1t_tDeuEmsRUsoyG83frY4", max_reviews=50)
        records = [transform_review(r, business_id) for r in fetched.reviews]
"""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from localdirectory.config.settings import get_settings
from localdirectory.core.circuit_breaker import get_circuit_breaker
from localdirectory.core.exceptions import (
    CircuitBreakerOpenError,
    ConfigurationError,
    ReviewSourceAuthError,
    ReviewSourceError,
    ReviewSourceNotFoundError,
    ReviewSourceRateLimitError,
    ReviewSourceTimeoutError,
    ReviewSourceUnavailableError,
)
from localdirectory.models.schemas import IncomingReview, ReviewSource, parse_timestamp, utc_now
from localdirectory.monitoring.metrics import record_reviews_fetched, track_review_source_request

logger = structlog.get_logger(__name__)

SOURCE_NAME = "geoscraper"
REVIEWS_PER_PAGE = 10
MIN_STRING_TOKEN_LENGTH = 10
TOKEN_KEYS = ("token", "next_page_token", "nextToken")
REVIEW_KEYS = ("rating", "user_name", "snippet")

_breaker = get_circuit_breaker(SOURCE_NAME, failure_threshold=5, recovery_timeout=60)


# =============================================================================
# Response Parsing
# =============================================================================


def _page_token(item: Any) -> Optional[str]:
    if isinstance(item, str) and len(item) > MIN_STRING_TOKEN_LENGTH:
        return item
    if isinstance(item, dict) and not any(item.get(key) for key in REVIEW_KEYS):
        for key in TOKEN_KEYS:
            if item.get(key):
                return str(item[key])
    return None


def split_page(data: Any) -> tuple[list[dict[str, Any]], Optional[str]]:
    """Separate one response into (reviews, next page token)."""
    if isinstance(data, list):
        if not data:
            return [], None
        token = _page_token(data[-1])
        items = data[:-1] if token is not None else data
        return [item for item in items if isinstance(item, dict)], token

    if isinstance(data, dict):
        for key in ("data", "reviews"):
            if isinstance(data.get(key), list):
                return [item for item in data[key] if isinstance(item, dict)], None

    return [], None


def _published_at(raw: dict[str, Any]) -> Optional[datetime]:
    stamp = raw.get("publishedAtDate_timestamp")
    if stamp:
        try:
            millis = float(stamp)
        except (TypeError, ValueError):
            millis = None
        if millis is not None:
            # Some responses carry microseconds
            if millis > 2e12:
                millis = millis / 1000
            try:
                return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
    return parse_timestamp(raw.get("publishedAtDate"))


def transform_review(
    raw: dict[str, Any],
    business_id: str,
    now: Optional[datetime] = None,
    position: int = 0,
) -> IncomingReview:
    """Map a raw GEOscraper review (nested API or flat export format) to a record.

    position is the review's index in the fetch; it keeps generated review ids
    unique when one author has several id-less reviews.
    """
    now = now or utc_now()
    user = raw.get("user") or {}
    owner_response = raw.get("owner_response") or {}

    user_name = raw.get("user_name") or user.get("name") or "Anonymous"
    review_id = raw.get("review_id") or (
        f"geo_{business_id}_{'_'.join(user_name.split())}_{int(now.timestamp() * 1000)}_{position}"
    )
    created_at = _published_at(raw) or now

    reply_text = raw.get("owner_response_text") or owner_response.get("text")
    reply_date = parse_timestamp(raw.get("owner_response_date") or owner_response.get("date"))

    return IncomingReview(
        business_id=business_id,
        review_id=review_id,
        user_name=user_name,
        rating=raw.get("rating") or 0,
        comment=raw.get("snippet") or raw.get("text") or raw.get("translated_snippet") or "",
        author_photo_url=raw.get("user_thumbnail") or user.get("thumbnail"),
        source_url=raw.get("user_link") or user.get("link"),
        verified=True,
        helpful=0,
        source=ReviewSource.GMB_API.value,
        original_create_time=created_at.isoformat(),
        reply_text=reply_text,
        reply_created_at=(reply_date or now).isoformat() if reply_text else None,
    )


# =============================================================================
# Client
# =============================================================================


@dataclass
class FetchedReviews:
    reviews: list[dict[str, Any]] = field(default_factory=list)
    pages: int = 0


class GeoScraperClient:
    """Async client for the GEOscraper review endpoint."""

    def __init__(
        self,
        api_token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        page_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_token: GEOscraper token. Loaded from settings when omitted.
            api_url: Review endpoint URL.
            timeout: Request timeout in seconds.
            page_delay: Seconds to pause between pages.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        settings = get_settings()
        self._api_token = api_token or (
            settings.geoscraper_api_token.get_secret_value()
            if settings.geoscraper_api_token
            else None
        )
        if not self._api_token:
            raise ConfigurationError(
                "GEOscraper API token not configured", config_key="geoscraper_api_token"
            )
        self._api_url = api_url or settings.geoscraper_api_url
        self._timeout = timeout if timeout is not None else settings.geoscraper_timeout_seconds
        self._page_delay = (
            page_delay if page_delay is not None else settings.geoscraper_page_delay_seconds
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            headers={
                "X-Berserker-Token": self._api_token,
                "Content-Type": "application/json",
            },
            transport=self._transport,
        )

    async def __aenter__(self) -> "GeoScraperClient":
        self._client = self._build_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    @retry(
        retry=retry_if_exception_type(
            (ReviewSourceRateLimitError, ReviewSourceUnavailableError, ReviewSourceTimeoutError)
        ),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _request(self, body: dict[str, Any]) -> Any:
        """POST one page request through the circuit breaker.

        Raises:
            CircuitBreakerOpenError: When the breaker is open.
            ReviewSourceRateLimitError: On 429 (retried).
            ReviewSourceUnavailableError: On 5xx or network errors (retried).
            ReviewSourceTimeoutError: On timeouts (retried).
            ReviewSourceAuthError: On 401/403.
            ReviewSourceNotFoundError: On 404 (unknown place id).
            ReviewSourceError: On other errors.
        """
        place_id = body.get("data_id")
        if not _breaker.can_execute():
            raise CircuitBreakerOpenError(SOURCE_NAME, _breaker.time_until_recovery())

        client = await self._ensure_client()
        try:
            with track_review_source_request(SOURCE_NAME, "fetch_page"):
                response = await client.post(self._api_url, json=body)
        except httpx.TimeoutException as e:
            await _breaker.record_failure()
            logger.warning("geoscraper_timeout", place_id=place_id, error=str(e))
            raise ReviewSourceTimeoutError(SOURCE_NAME, f"Request timeout: {e}", {"place_id": place_id})
        except httpx.RequestError as e:
            await _breaker.record_failure()
            logger.warning("geoscraper_network_error", place_id=place_id, error=str(e))
            raise ReviewSourceUnavailableError(SOURCE_NAME, f"Network error: {e}", {"place_id": place_id})

        status_code = response.status_code
        details = {"place_id": place_id, "status_code": status_code}
        if status_code == 429:
            await _breaker.record_failure()
            logger.warning("geoscraper_rate_limited", place_id=place_id)
            raise ReviewSourceRateLimitError(SOURCE_NAME, "Rate limited", details)
        if status_code in (401, 403):
            await _breaker.record_failure()
            raise ReviewSourceAuthError(SOURCE_NAME, "Token rejected", details)
        if status_code == 404:
            raise ReviewSourceNotFoundError(SOURCE_NAME, f"Invalid place id: {place_id}", details)
        if status_code >= 500:
            await _breaker.record_failure()
            logger.warning("geoscraper_server_error", place_id=place_id, status_code=status_code)
            raise ReviewSourceUnavailableError(SOURCE_NAME, f"Server error {status_code}", details)
        if status_code >= 400:
            raise ReviewSourceError(
                SOURCE_NAME, f"API error {status_code}: {response.text[:200]}", details
            )

        await _breaker.record_success()
        try:
            return response.json()
        except ValueError as e:
            raise ReviewSourceError(SOURCE_NAME, "Invalid JSON response", details) from e

    async def fetch_page(
        self, place_id: str, token: Optional[str] = None
    ) -> tuple[list[dict[str, Any]], Optional[str]]:
        body: dict[str, Any] = {"data_id": place_id, "sort_by": "newest", "hl": "en"}
        if token:
            body["token"] = token
        return split_page(await self._request(body))

    async def fetch_reviews(self, place_id: str, max_reviews: int = 200) -> FetchedReviews:
        """Follow pages until the token runs out, a page is empty, or the limit is hit."""
        max_pages = max(1, math.ceil(max_reviews / REVIEWS_PER_PAGE))
        fetched = FetchedReviews()
        token: Optional[str] = None

        while fetched.pages < max_pages:
            if fetched.pages and self._page_delay:
                await asyncio.sleep(self._page_delay)
            reviews, token = await self.fetch_page(place_id, token)
            fetched.pages += 1
            if not reviews:
                break
            fetched.reviews.extend(reviews)
            if len(fetched.reviews) >= max_reviews or token is None:
                break

        fetched.reviews = fetched.reviews[:max_reviews]
        record_reviews_fetched(SOURCE_NAME, len(fetched.reviews))
        logger.info(
            "geoscraper_reviews_fetched",
            place_id=place_id,
            reviews=len(fetched.reviews),
            pages=fetched.pages,
        )
        return fetched
