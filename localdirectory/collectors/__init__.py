"""Third-party review source collectors."""

from localdirectory.collectors.geoscraper import (
    FetchedReviews,
    GeoScraperClient,
    split_page,
    transform_review,
)
