"""In-process document store.

Used for dry runs, local development (STORE_BACKEND=memory) and tests.
Rows are deep-copied on the way in and out so callers never share state
with the store.
"""

import copy
from collections import defaultdict
from typing import Any, Optional

import structlog

from localdirectory.core.exceptions import DocumentNotFoundError
from localdirectory.models.schemas import new_id
from localdirectory.store.base import DocumentStore, to_json_value

logger = structlog.get_logger(__name__)


def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
    for column, expected in filters.items():
        actual = row.get(column)
        if expected is None:
            if actual is not None:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(column: str):
    def key(row: dict[str, Any]):
        value = row.get(column)
        return (value is None, value if value is not None else 0)
    return key


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed implementation of DocumentStore."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        row = self._collections[collection].get(doc_id)
        return copy.deepcopy(row) if row is not None else None

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
        wanted = to_json_value(filters or {})
        rows = [
            row for row in self._collections[collection].values()
            if _matches(row, wanted)
        ]
        if in_filter is not None:
            column, values = in_filter
            allowed = set(to_json_value(list(values)))
            rows = [row for row in rows if row.get(column) in allowed]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def insert(self, collection: str, row: dict[str, Any]) -> dict[str, Any]:
        stored = to_json_value(dict(row))
        stored.setdefault("id", new_id())
        self._collections[collection][stored["id"]] = stored
        return copy.deepcopy(stored)

    def patch(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        row = self._collections[collection].get(doc_id)
        if row is None:
            raise DocumentNotFoundError(collection, doc_id)
        row.update(to_json_value(dict(fields)))
        return copy.deepcopy(row)

    def count(self, collection: str, filters: Optional[dict[str, Any]] = None) -> int:
        wanted = to_json_value(filters or {})
        return sum(1 for row in self._collections[collection].values() if _matches(row, wanted))

    def delete_all(self, collection: str) -> int:
        removed = len(self._collections[collection])
        self._collections[collection].clear()
        logger.info("collection_cleared", collection=collection, removed=removed)
        return removed
