"""FastAPI dependency injection providers.

Route handlers receive pipeline services built on the process-wide document
store. Tests swap the store with set_document_store() or override these
providers through app.dependency_overrides.
"""

from typing import Optional

from fastapi import Depends

from localdirectory.config.settings import Settings, get_settings
from localdirectory.dedup.pairs import DuplicateResolver
from localdirectory.importers.businesses import BusinessImporter
from localdirectory.importers.reviews import ReviewImporter
from localdirectory.scheduler.jobs import SyncScheduler
from localdirectory.store import get_document_store
from localdirectory.store.base import DocumentStore
from localdirectory.sync.counts import ReviewCountSynchronizer
from localdirectory.sync.processor import ReviewSyncProcessor
from localdirectory.sync.queue import SyncLogBook

# Global instance for singleton pattern
_scheduler_instance: Optional[SyncScheduler] = None


def get_store() -> DocumentStore:
    return get_document_store()


def get_review_importer(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ReviewImporter:
    return ReviewImporter(
        store,
        name_threshold=settings.name_match_threshold,
        content_threshold=settings.content_match_threshold,
    )


def get_business_importer(store: DocumentStore = Depends(get_store)) -> BusinessImporter:
    return BusinessImporter(store)


def get_count_synchronizer(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ReviewCountSynchronizer:
    return ReviewCountSynchronizer(
        store,
        batch_size_limit=settings.sync_batch_size_limit,
        max_skip=settings.sync_max_skip,
    )


def get_sync_processor(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ReviewSyncProcessor:
    return ReviewSyncProcessor(store, settings=settings)


def get_sync_log_book(store: DocumentStore = Depends(get_store)) -> SyncLogBook:
    return SyncLogBook(store)


def get_duplicate_resolver(store: DocumentStore = Depends(get_store)) -> DuplicateResolver:
    return DuplicateResolver(store)


def get_scheduler() -> Optional[SyncScheduler]:
    """
    Get the SyncScheduler instance, or None when scheduling is disabled.
    """
    return _scheduler_instance


def set_scheduler(scheduler: Optional[SyncScheduler]) -> None:
    """
    Set the global scheduler instance.

    Called during application startup to initialize the scheduler.
    """
    global _scheduler_instance
    _scheduler_instance = scheduler


def reset_dependencies() -> None:
    """
    Reset all global dependency instances.

    Useful for testing or application shutdown.
    """
    global _scheduler_instance
    _scheduler_instance = None
