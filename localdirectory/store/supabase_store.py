"""Supabase-backed document store.

Every call is synchronous PostgREST through supabase-py; reads page in
PAGE_SIZE chunks. Uniqueness (review id, place id, slug) is enforced by the
importers with lookups before insert, not by the tables.

Supabase Tables:
    businesses, reviews, import_batches, review_sync_queue, review_sync_logs
    Run get_table_creation_sql() in the Supabase SQL Editor to create them.
"""

from typing import Any, Optional

import structlog
from supabase import Client, create_client

from localdirectory.config.settings import get_settings
from localdirectory.core.exceptions import DocumentNotFoundError, DocumentStoreError
from localdirectory.models.schemas import new_id
from localdirectory.store.base import Collections, DocumentStore, to_json_value

logger = structlog.get_logger(__name__)

# PostgREST max-rows default
PAGE_SIZE = 1000


# =============================================================================
# Supabase Table Initialization
# =============================================================================

DIRECTORY_TABLES_SQL = """
-- ============================================================================
-- LocalDirectory Database Schema
-- Run this SQL in Supabase SQL Editor to create the required tables
-- ============================================================================

CREATE TABLE IF NOT EXISTS businesses (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT,
    url_path TEXT,
    description TEXT,
    short_description TEXT,
    phone TEXT,
    email TEXT,
    website TEXT,
    address TEXT,
    city TEXT,
    state TEXT,
    zip TEXT,
    category_id TEXT,
    services JSONB DEFAULT '[]',
    coordinates JSONB,
    hours JSONB,
    place_id TEXT,
    cid TEXT,
    plan_tier TEXT DEFAULT 'free' CHECK (plan_tier IN ('free', 'starter', 'pro', 'power')),
    featured BOOLEAN DEFAULT false,
    priority INTEGER DEFAULT 0,
    claimed BOOLEAN DEFAULT false,
    verified BOOLEAN DEFAULT false,
    active BOOLEAN DEFAULT true,
    rating DOUBLE PRECISION DEFAULT 0,
    review_count INTEGER DEFAULT 0,
    data_source JSONB,
    sync_status TEXT DEFAULT 'idle',
    sync_enabled BOOLEAN DEFAULT true,
    last_review_sync TIMESTAMPTZ,
    last_sync_error TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_businesses_place_id ON businesses(place_id);
CREATE INDEX IF NOT EXISTS idx_businesses_slug ON businesses(slug);
CREATE INDEX IF NOT EXISTS idx_businesses_created_at ON businesses(created_at);

CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    business_id TEXT NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
    review_id TEXT,
    user_id TEXT,
    user_name TEXT,
    author_photo_url TEXT,
    rating INTEGER NOT NULL CHECK (rating >= 1 AND rating <= 5),
    comment TEXT DEFAULT '',
    verified BOOLEAN DEFAULT false,
    helpful INTEGER DEFAULT 0,
    source TEXT,
    source_url TEXT,
    import_batch_id TEXT,
    original_create_time TEXT,
    original_update_time TEXT,
    reply JSONB,
    is_displayed BOOLEAN DEFAULT true,
    flagged BOOLEAN DEFAULT false,
    keywords JSONB DEFAULT '[]',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    synced_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_reviews_business_id ON reviews(business_id);
CREATE INDEX IF NOT EXISTS idx_reviews_review_id ON reviews(review_id);

CREATE TABLE IF NOT EXISTS import_batches (
    id TEXT PRIMARY KEY,
    import_type TEXT NOT NULL,
    imported_by TEXT,
    imported_at TIMESTAMPTZ,
    status TEXT NOT NULL CHECK (status IN ('processing', 'completed', 'failed')),
    business_count INTEGER,
    review_count INTEGER,
    source TEXT,
    source_metadata JSONB,
    results JSONB,
    errors JSONB DEFAULT '[]',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    completed_at TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS review_sync_queue (
    id TEXT PRIMARY KEY,
    business_id TEXT NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
    place_id TEXT NOT NULL,
    priority INTEGER DEFAULT 5,
    status TEXT NOT NULL CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    requested_at TIMESTAMPTZ DEFAULT NOW(),
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    failed_at TIMESTAMPTZ,
    retry_count INTEGER DEFAULT 0,
    last_error TEXT,
    results JSONB
);

CREATE INDEX IF NOT EXISTS idx_review_sync_queue_status ON review_sync_queue(status);
CREATE INDEX IF NOT EXISTS idx_review_sync_queue_business ON review_sync_queue(business_id);

CREATE TABLE IF NOT EXISTS review_sync_logs (
    id TEXT PRIMARY KEY,
    business_id TEXT NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
    queue_id TEXT,
    status TEXT NOT NULL,
    started_at TIMESTAMPTZ DEFAULT NOW(),
    completed_at TIMESTAMPTZ,
    reviews_fetched INTEGER DEFAULT 0,
    reviews_filtered INTEGER DEFAULT 0,
    reviews_imported INTEGER DEFAULT 0,
    reviews_duplicate INTEGER DEFAULT 0,
    error TEXT
);

CREATE INDEX IF NOT EXISTS idx_review_sync_logs_business ON review_sync_logs(business_id);
"""


def get_table_creation_sql() -> str:
    """SQL creating every table the pipeline uses."""
    return DIRECTORY_TABLES_SQL


# =============================================================================
# Store
# =============================================================================


class SupabaseDocumentStore(DocumentStore):
    """DocumentStore implementation over supabase-py tables.

    Example:
        store = SupabaseDocumentStore()
        business = store.find_one("businesses", {"place_id": "ChIJ..."})
    """

    def __init__(self, client: Optional[Client] = None):
        if client is None:
            settings = get_settings()
            client = create_client(
                settings.supabase_url,
                settings.supabase_key.get_secret_value(),
            )
        self._client = client

    @staticmethod
    def _apply_filters(query: Any, filters: Optional[dict[str, Any]]) -> Any:
        for column, value in to_json_value(filters or {}).items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, value)
        return query

    def _fail(self, collection: str, operation: str, error: Exception) -> DocumentStoreError:
        logger.error(
            "document_store_error",
            collection=collection,
            operation=operation,
            error=str(error),
        )
        return DocumentStoreError(collection, operation, str(error))

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        try:
            result = (
                self._client.table(collection)
                .select("*")
                .eq("id", doc_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise self._fail(collection, "get", e) from e
        return result.data[0] if result.data else None

    def _select(
        self,
        collection: str,
        filters: Optional[dict[str, Any]],
        in_filter: Optional[tuple[str, list[Any]]],
        order_by: Optional[str],
        descending: bool,
    ) -> Any:
        query = self._apply_filters(self._client.table(collection).select("*"), filters)
        if in_filter is not None:
            column, values = in_filter
            query = query.in_(column, to_json_value(list(values)))
        # Pages need a stable order
        return query.order(order_by or "id", desc=descending)

    def find(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        in_filter: Optional[tuple[str, list[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Read matching rows, paging past PostgREST's per-request row cap.

        Without a limit every matching row is returned.
        """
        rows: list[dict[str, Any]] = []
        start = offset
        remaining = limit
        try:
            while remaining is None or remaining > 0:
                size = PAGE_SIZE if remaining is None else min(PAGE_SIZE, remaining)
                page = (
                    self._select(collection, filters, in_filter, order_by, descending)
                    .range(start, start + size - 1)
                    .execute()
                ).data or []
                rows.extend(page)
                if len(page) < size:
                    break
                start += size
                if remaining is not None:
                    remaining -= size
        except Exception as e:
            raise self._fail(collection, "find", e) from e
        return rows

    def insert(self, collection: str, row: dict[str, Any]) -> dict[str, Any]:
        payload = to_json_value(dict(row))
        payload.setdefault("id", new_id())
        try:
            result = self._client.table(collection).insert(payload).execute()
        except Exception as e:
            raise self._fail(collection, "insert", e) from e
        return result.data[0] if result.data else payload

    def patch(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            result = (
                self._client.table(collection)
                .update(to_json_value(dict(fields)))
                .eq("id", doc_id)
                .execute()
            )
        except Exception as e:
            raise self._fail(collection, "patch", e) from e
        if not result.data:
            raise DocumentNotFoundError(collection, doc_id)
        return result.data[0]

    def count(self, collection: str, filters: Optional[dict[str, Any]] = None) -> int:
        try:
            query = self._apply_filters(
                self._client.table(collection).select("id", count="exact"), filters
            )
            result = query.execute()
        except Exception as e:
            raise self._fail(collection, "count", e) from e
        return result.count or 0

    def delete_all(self, collection: str) -> int:
        try:
            result = self._client.table(collection).delete().neq("id", "").execute()
        except Exception as e:
            raise self._fail(collection, "delete_all", e) from e
        removed = len(result.data or [])
        logger.info("collection_cleared", collection=collection, removed=removed)
        return removed

    def check_tables(self) -> bool:
        """Verify the pipeline tables exist and are reachable."""
        try:
            for collection in (
                Collections.BUSINESSES,
                Collections.REVIEWS,
                Collections.IMPORT_BATCHES,
                Collections.SYNC_QUEUE,
                Collections.SYNC_LOGS,
            ):
                self._client.table(collection).select("id").limit(1).execute()
        except Exception as e:
            logger.error(
                "supabase_table_check_failed",
                error=str(e),
                hint="Run get_table_creation_sql() in Supabase SQL Editor to create the tables",
            )
            return False
        logger.info("supabase_table_check", status="accessible")
        return True
