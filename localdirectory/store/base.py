"""Document store interface over the hosted backend.

The pipeline only ever needs a handful of primitives: fetch by id, filter by
equality, insert, patch, count. Both the Supabase backend and the in-memory
backend implement exactly these, so pipeline code never sees the SDK.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional


class Collections:
    """Backend table names."""

    BUSINESSES = "businesses"
    REVIEWS = "reviews"
    IMPORT_BATCHES = "import_batches"
    SYNC_QUEUE = "review_sync_queue"
    SYNC_LOGS = "review_sync_logs"


def to_json_value(value: Any) -> Any:
    """Convert datetimes and enums (recursively) to what the backend stores."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value


def chunked(values: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class DocumentStore(ABC):
    """Minimal document API used by importers, dedup and sync.

    Filters are equality matches; a filter value of None matches a missing
    or null column.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Fetch one document by id."""

    @abstractmethod
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
        """Return documents matching all filters; every match when limit is None."""

    @abstractmethod
    def insert(self, collection: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a document and return it as stored."""

    @abstractmethod
    def patch(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Update fields of one document; raises DocumentNotFoundError if absent."""

    @abstractmethod
    def count(self, collection: str, filters: Optional[dict[str, Any]] = None) -> int:
        """Count documents matching all filters."""

    @abstractmethod
    def delete_all(self, collection: str) -> int:
        """Delete every document in a collection and return how many went."""

    def find_one(
        self, collection: str, filters: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        rows = self.find(collection, filters, limit=1)
        return rows[0] if rows else None

    def find_in(
        self,
        collection: str,
        column: str,
        values: list[Any],
        chunk_size: int = 100,
    ) -> list[dict[str, Any]]:
        """Documents whose column is one of values, queried in chunks."""
        rows: list[dict[str, Any]] = []
        unique = list(dict.fromkeys(v for v in values if v is not None))
        for chunk in chunked(unique, chunk_size):
            rows.extend(self.find(collection, in_filter=(column, chunk)))
        return rows
