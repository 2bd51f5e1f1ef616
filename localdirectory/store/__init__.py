"""
Document store access.

Usage:
    from localdirectory.store import get_document_store

    store = get_document_store()
    business = store.get(Collections.BUSINESSES, business_id)
"""

from typing import Optional

import structlog

from localdirectory.config.settings import get_settings
from localdirectory.store.base import Collections, DocumentStore, to_json_value
from localdirectory.store.memory import InMemoryDocumentStore
from localdirectory.store.supabase_store import SupabaseDocumentStore, get_table_creation_sql

logger = structlog.get_logger(__name__)

_document_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """Return the process-wide store selected by STORE_BACKEND."""
    global _document_store

    if _document_store is None:
        settings = get_settings()
        if settings.store_backend == "memory":
            _document_store = InMemoryDocumentStore()
        else:
            _document_store = SupabaseDocumentStore()
        logger.info("document_store_created", backend=settings.store_backend)

    return _document_store


def set_document_store(store: Optional[DocumentStore]) -> None:
    """Replace the process-wide store (None resets it)."""
    global _document_store
    _document_store = store


__all__ = [
    "Collections",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SupabaseDocumentStore",
    "get_document_store",
    "get_table_creation_sql",
    "set_document_store",
    "to_json_value",
]
