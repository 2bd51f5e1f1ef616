"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- store: fresh in-memory document store
- make_business: insert a business listing into the store
- make_review: insert a stored review into the store
- review_record: factory for incoming review records
"""

import os
from datetime import datetime, timezone

# Settings are cached on first use; these must be set before any import reads them
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-service-role-key")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("GEOSCRAPER_API_TOKEN", "test-geoscraper-token")

import pytest

from localdirectory.core.circuit_breaker import reset_all_circuit_breakers
from localdirectory.models.schemas import Business, IncomingReview, Review
from localdirectory.store import set_document_store
from localdirectory.store.base import Collections
from localdirectory.store.memory import InMemoryDocumentStore


@pytest.fixture
def store():
    """Fresh in-memory store, also installed as the process-wide store."""
    memory_store = InMemoryDocumentStore()
    set_document_store(memory_store)
    yield memory_store
    set_document_store(None)


@pytest.fixture(autouse=True)
def reset_circuits():
    """Every test starts with closed circuit breakers."""
    reset_all_circuit_breakers()
    yield
    reset_all_circuit_breakers()


@pytest.fixture
def make_business(store):
    """Insert a business and return the model."""

    def _make(name: str = "Joe's Plumbing LLC", **fields) -> Business:
        business = Business(name=name, **fields)
        store.insert(Collections.BUSINESSES, business.to_db_row())
        return business

    return _make


@pytest.fixture
def make_review(store):
    """Insert a stored review and return the model."""

    def _make(business_id: str, **fields) -> Review:
        fields.setdefault("rating", 5)
        review = Review(business_id=business_id, **fields)
        store.insert(Collections.REVIEWS, review.to_db_row())
        return review

    return _make


@pytest.fixture
def review_record():
    """Factory for incoming review records."""

    def _make(**fields) -> IncomingReview:
        fields.setdefault("review_id", "rev-1")
        fields.setdefault("rating", 5)
        fields.setdefault("comment", "Fixed our leaking pipe in under an hour.")
        fields.setdefault("user_name", "Alice Smith")
        return IncomingReview(**fields)

    return _make


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
