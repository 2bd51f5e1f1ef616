"""Result shapes returned by the import, dedup and sync operations.

The API routes return these unchanged as response models.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field


# =============================================================================
# Review Import
# =============================================================================


class ImportFailure(BaseModel):
    """One record that could not be imported."""

    index: int = Field(..., description="Position of the record in the submitted batch")
    review_id: Optional[str] = Field(None, description="External review id, if any")
    reason: str = Field(..., description="Failure category, e.g. place_id_not_found")
    message: str = Field(..., description="Human-readable explanation")


class ReviewImportResult(BaseModel):
    """Outcome of a simple or full-matching review import."""

    successful: int = Field(0, description="Reviews inserted")
    failed: int = Field(0, description="Records rejected")
    skipped: int = Field(0, description="Records not attempted")
    duplicates: int = Field(0, description="Records recognised as existing reviews")
    error_summary: dict[str, int] = Field(
        default_factory=dict, description="Failure and duplicate counts by category"
    )
    errors: list[ImportFailure] = Field(default_factory=list)
    business_matches: dict[str, int] = Field(
        default_factory=dict, description="Matched records by matching strategy"
    )
    import_batch_id: Optional[str] = Field(None, description="Import batch document id")


class BulkReviewImportResult(BaseModel):
    """Outcome of importing records already resolved to a business."""

    total: int = 0
    created: int = 0
    duplicates: int = 0
    business_not_found: int = 0
    errors: int = 0
    error_messages: list[str] = Field(default_factory=list, description="At most ten")
    updated_businesses: int = Field(0, description="Businesses whose counters were repaired")

    @computed_field
    @property
    def failed(self) -> int:
        return self.business_not_found + self.errors


class DuplicatePreview(BaseModel):
    """Dry-run of a review import: what would be imported and what would not."""

    total_reviews: int = 0
    duplicates: int = 0
    business_match_failures: int = 0
    would_import: int = 0
    duplicate_details: list[dict[str, Any]] = Field(default_factory=list)


class DiagnosticDetail(BaseModel):
    index: int
    review_id: Optional[str] = None
    user_name: Optional[str] = None
    status: Literal["no_business_match", "duplicate_id", "duplicate_content", "ready"]
    business_id: Optional[str] = None
    business_name: Optional[str] = None
    match_type: Optional[str] = None
    confidence: Optional[float] = None


class DiagnosticResult(BaseModel):
    """Per-record explanation of how an import would go, without writing."""

    total_reviews: int = 0
    business_matches: int = 0
    business_match_failures: int = 0
    duplicate_ids: int = 0
    duplicate_content: int = 0
    ready_to_import: int = 0
    details: list[DiagnosticDetail] = Field(default_factory=list)


# =============================================================================
# Business Import
# =============================================================================


class BusinessImportResult(BaseModel):
    total_processed: int = 0
    new_businesses_added: int = 0
    existing_businesses_skipped: int = 0
    errors: int = 0
    error_messages: list[str] = Field(default_factory=list, description="At most ten")


class BusinessImportStats(BaseModel):
    total_businesses: int = 0
    average_rating: float = 0.0
    sample_size: int = 0
    with_place_id_percent: float = Field(0.0, description="Share of the sample with a place id")
    with_reviews_percent: float = Field(0.0, description="Share of the sample with reviews")
    source_distribution: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Counter Repair
# =============================================================================


class CountChange(BaseModel):
    business_id: str
    business_name: str
    old_count: Optional[int] = None
    new_count: int
    old_rating: Optional[float] = None
    new_rating: float


class CountSyncResult(BaseModel):
    total: int = Field(0, description="Businesses examined")
    updated: int = Field(0, description="Businesses whose counters changed")
    errors: int = 0
    details: list[CountChange] = Field(default_factory=list)


class BusinessIdBatch(BaseModel):
    business_ids: list[str] = Field(default_factory=list)
    has_more: bool = False
    next_skip_count: int = 0
    error: Optional[str] = None


class MismatchReport(BaseModel):
    sampled: int = 0
    mismatches: int = Field(0, description="Businesses showing zero reviews that have reviews")
    business_ids: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def needs_sync(self) -> bool:
        return self.mismatches > 0


class CountSyncSummary(BaseModel):
    batches: int = 0
    total: int = 0
    updated: int = 0
    errors: int = 0


# =============================================================================
# Deduplication
# =============================================================================


class ReviewSummary(BaseModel):
    id: str
    review_id: Optional[str] = None
    source: Optional[str] = None
    author: Optional[str] = None
    rating: Optional[int] = None
    comment: str = Field("", description="First 100 characters")
    created_at: Optional[datetime] = None


class DuplicatePair(BaseModel):
    primary: ReviewSummary
    duplicate: ReviewSummary
    confidence: float
    reasons: list[str] = Field(default_factory=list)


class DuplicateReport(BaseModel):
    duplicates: list[DuplicatePair] = Field(default_factory=list)
    total: int = Field(0, description="Reviews examined")
    duplicate_count: int = 0
    processed: int = 0


class ResolutionAction(BaseModel):
    action: Literal["remove", "keep"]
    review_id: Optional[str] = None
    source: Optional[str] = None
    reason: str


class ResolutionResult(BaseModel):
    removed: int = 0
    kept: int = 0
    actions: list[ResolutionAction] = Field(default_factory=list)
    dry_run: bool = False


class AutoFlagResult(BaseModel):
    checked: int = Field(0, description="New reviews compared against existing ones")
    flagged: int = 0
    flagged_review_ids: list[str] = Field(default_factory=list)


# =============================================================================
# Review Sync Queue
# =============================================================================


class QueueStatus(BaseModel):
    pending: int = 0
    processing: int = 0
    completed_recent: int = 0
    failed_recent: int = 0
    max_connections: int = 3
    available_slots: int = 0


class BulkAddResult(BaseModel):
    added: int = 0
    skipped: int = Field(0, description="Businesses already queued")
    queue_ids: list[str] = Field(default_factory=list)


class FetchImportResult(BaseModel):
    """Outcome of fetching one business's reviews and importing them."""

    success: bool = False
    fetched: int = 0
    filtered: int = Field(0, description="Reviews left after dropping empty comments")
    skipped: int = Field(0, description="Reviews dropped for having no text")
    imported: int = 0
    duplicates: int = 0
    failed: int = 0
    pages: int = 0
    error: Optional[str] = None


class ProcessItemResult(BaseModel):
    queue_id: str
    status: Literal["completed", "failed", "skipped"]
    result: Optional[FetchImportResult] = None
    message: Optional[str] = None


class QueueProcessResult(BaseModel):
    processed: int = 0
    failed: int = 0
    remaining: int = 0
    processing: int = 0
    message: Optional[str] = None


class RefillResult(BaseModel):
    pending_before: int = 0
    added: int = 0
    skipped: int = 0
    reason: Optional[str] = None


class DailySyncResult(BaseModel):
    selected: int = 0
    queued: int = 0
    skipped: int = 0
    processing: QueueProcessResult = Field(default_factory=QueueProcessResult)
