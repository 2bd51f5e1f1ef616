"""Pydantic models for API requests and responses.

Pipeline results (ReviewImportResult, CountSyncResult, ...) live in
localdirectory.models.results and are returned unchanged; this module only
holds the request bodies and the health/error envelopes.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from localdirectory.dedup.pairs import DuplicatePairRef
from localdirectory.models.schemas import IncomingBusiness, IncomingReview
from localdirectory.sync.queue import QueueRequest

MAX_RECORDS_PER_REQUEST = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Import Models
# =============================================================================


class ReviewRecordsRequest(BaseModel):
    """Review records for a dry run (preview or diagnostic)."""

    reviews: list[IncomingReview] = Field(
        ...,
        min_length=1,
        max_length=MAX_RECORDS_PER_REQUEST,
        description="Review records as exported from the source",
    )


class ReviewImportRequest(ReviewRecordsRequest):
    """Request model for importing reviews."""

    mode: Literal["simple", "batch"] = Field(
        default="batch",
        description="simple: strict place id matching; batch: full matching with an import batch record",
    )
    source: str = Field(
        default="manual",
        description="Source label stored on each review",
        json_schema_extra={"example": "gmb_import"},
    )
    skip_duplicates: bool = Field(
        default=True,
        description="Batch mode only: skip records that duplicate stored reviews",
    )
    source_metadata: Optional[dict[str, Any]] = Field(
        None,
        description="Batch mode only: e.g. {'file_name': 'reviews.csv'}",
    )
    imported_by: Optional[str] = Field(None, description="User id of the importing admin")


class BusinessImportRequest(BaseModel):
    """Request model for bulk business import."""

    businesses: list[IncomingBusiness] = Field(
        ..., min_length=1, max_length=MAX_RECORDS_PER_REQUEST
    )
    import_source: str = Field(default="admin_import")
    skip_duplicate_check: bool = Field(
        default=False,
        description="Insert even when the place id or name+city already exists",
    )


# =============================================================================
# Sync Models
# =============================================================================


class CountSyncRequest(BaseModel):
    """Businesses whose review counters should be recomputed."""

    business_ids: list[str] = Field(..., min_length=1, description="Business document ids")


class QueueAddRequest(BaseModel):
    """Request model for adding businesses to the review sync queue."""

    businesses: list[QueueRequest] = Field(..., min_length=1)
    priority: int = Field(
        default=5,
        ge=-1,
        le=10,
        description="Higher runs first; -1 adds the items paused",
    )


class QueueProcessRequest(BaseModel):
    """Request model for a manual queue processing run."""

    max_items: int = Field(default=10, ge=1, le=50)


class ClearStuckResponse(BaseModel):
    cleared: int = Field(..., description="Items returned to pending")


# =============================================================================
# Duplicate Models
# =============================================================================


class DuplicateResolveRequest(BaseModel):
    """Request model for resolving duplicate review pairs."""

    pairs: list[DuplicatePairRef] = Field(..., min_length=1)
    dry_run: bool = Field(default=False, description="Report the actions without flagging reviews")


# =============================================================================
# Health Check Models
# =============================================================================


class HealthStatus(BaseModel):
    """Individual service health status."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Service status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system status"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Individual service statuses",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")


class ValidationErrorDetail(BaseModel):
    """Details for validation errors."""

    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    """Response for validation errors."""

    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
