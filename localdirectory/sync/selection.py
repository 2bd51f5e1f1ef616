"""Choose which businesses get their reviews synced next."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from localdirectory.models.schemas import TIER_PRIORITY, Business, SyncStatus, utc_now
from localdirectory.store.base import Collections, DocumentStore
from localdirectory.sync.queue import ReviewSyncQueue

logger = structlog.get_logger(__name__)

RESYNC_AFTER = timedelta(hours=24)
_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _syncable(store: DocumentStore) -> list[Business]:
    rows = store.find(Collections.BUSINESSES, {"active": True})
    return [
        business
        for business in (Business.from_db_row(row) for row in rows)
        if business.place_id and business.sync_enabled
    ]


def select_businesses_for_sync(
    store: DocumentStore,
    limit: int = 50,
    include_existing: bool = False,
    now: Optional[datetime] = None,
) -> list[Business]:
    """Active, syncable businesses ordered by plan tier, then least recently synced.

    Businesses already syncing are skipped, and so are those synced within
    the last 24 hours unless include_existing is set.
    """
    now = now or utc_now()
    candidates = []
    for business in _syncable(store):
        if business.sync_status == SyncStatus.SYNCING:
            continue
        if (
            not include_existing
            and business.last_review_sync is not None
            and now - business.last_review_sync < RESYNC_AFTER
        ):
            continue
        candidates.append(business)

    candidates.sort(
        key=lambda b: (
            -TIER_PRIORITY.get(b.plan_tier.value, 0),
            b.last_review_sync or _NEVER,
        )
    )
    return candidates[:limit]


def find_zero_review_businesses(
    store: DocumentStore,
    limit: int = 100,
    exclude_in_queue: bool = True,
) -> list[Business]:
    """Syncable businesses with no reviews yet.

    With exclude_in_queue, businesses with an open queue item are left out.
    """
    queued = ReviewSyncQueue(store).open_business_ids() if exclude_in_queue else set()
    found = [
        business
        for business in _syncable(store)
        if not business.review_count and business.id not in queued
    ]
    logger.info("zero_review_businesses_found", count=len(found), excluded_in_queue=len(queued))
    return found[:limit]
