"""Document and result models."""

from localdirectory.models.schemas import (
    Business,
    ImportBatch,
    ImportStatus,
    IncomingBusiness,
    IncomingReview,
    PlanTier,
    QueueItemStatus,
    Review,
    ReviewReply,
    ReviewSource,
    SOURCE_AUTHORITY,
    SyncLog,
    SyncLogStatus,
    SyncQueueItem,
    SyncStatus,
    TIER_PRIORITY,
)
