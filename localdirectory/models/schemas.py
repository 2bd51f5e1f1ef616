"""Pydantic models for directory documents and incoming import records."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort conversion of ISO strings and epoch numbers to aware datetimes.

    Numbers above 1e11 are treated as milliseconds. Unparseable input
    returns None so callers can fall back to "now".
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


# =============================================================================
# Enums
# =============================================================================


class PlanTier(str, Enum):
    """Subscription level gating listing features."""
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    POWER = "power"


# Higher tiers are synced first
TIER_PRIORITY: dict[str, int] = {
    PlanTier.POWER.value: 4,
    PlanTier.PRO.value: 3,
    PlanTier.STARTER.value: 2,
    PlanTier.FREE.value: 1,
}


class ReviewSource(str, Enum):
    """Where a review came from."""
    GMB_API = "gmb_api"
    GMB_IMPORT = "gmb_import"
    YELP_IMPORT = "yelp_import"
    FACEBOOK_IMPORT = "facebook_import"
    DIRECT = "direct"
    MANUAL = "manual"


# Which copy survives when two sources carry the same review
SOURCE_AUTHORITY: dict[str, int] = {
    ReviewSource.GMB_API.value: 10,
    ReviewSource.GMB_IMPORT.value: 9,
    ReviewSource.FACEBOOK_IMPORT.value: 5,
    ReviewSource.YELP_IMPORT.value: 5,
    ReviewSource.DIRECT.value: 3,
    ReviewSource.MANUAL.value: 1,
}


def source_authority(source: Optional[str]) -> int:
    return SOURCE_AUTHORITY.get(source or "", 0)


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class ImportStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncLogStatus(str, Enum):
    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"


# =============================================================================
# Base Models
# =============================================================================


class BaseEntity(BaseModel):
    """Base model with conversion to and from backend rows."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        extra="ignore",
    )

    def to_db_row(self) -> dict[str, Any]:
        """Convert model to a JSON-safe row for the document backend."""
        return self.model_dump(mode="json")

    @classmethod
    def from_db_row(cls, row: dict[str, Any]):
        """Create model instance from a backend row."""
        return cls.model_validate(row)


# =============================================================================
# Directory Documents
# =============================================================================


class Business(BaseEntity):
    """A directory listing for a local service provider."""

    id: str = Field(default_factory=new_id, description="Document id")
    name: str = Field(..., min_length=1, max_length=255, description="Business name")
    slug: Optional[str] = Field(None, description="URL slug, unique across listings")
    url_path: Optional[str] = Field(None, description="Canonical listing path")
    description: Optional[str] = None
    short_description: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50, description="Phone number")
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500, description="Street address")
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    category_id: Optional[str] = None
    services: list[Any] = Field(default_factory=list)
    coordinates: Optional[dict[str, float]] = None
    hours: Optional[dict[str, Any]] = None
    place_id: Optional[str] = Field(None, description="External place identifier")
    cid: Optional[str] = Field(None, description="Google customer id")
    plan_tier: PlanTier = Field(PlanTier.FREE, description="Subscription level")
    featured: bool = False
    priority: int = 0
    claimed: bool = False
    verified: bool = False
    active: bool = True
    rating: Optional[float] = Field(0.0, ge=0.0, le=5.0, description="Average review rating")
    review_count: Optional[int] = Field(0, ge=0, description="Stored review count")
    data_source: Optional[dict[str, Any]] = Field(
        None, description="Import provenance: primary source, last sync, sync status"
    )
    sync_status: SyncStatus = Field(SyncStatus.IDLE, description="Review sync state")
    sync_enabled: bool = Field(True, description="False opts the listing out of review sync")
    last_review_sync: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ReviewReply(BaseModel):
    """Owner response attached to a review."""

    text: str
    created_at: datetime = Field(default_factory=utc_now)
    author_name: str = "Business Owner"


class Review(BaseEntity):
    """A customer review attached to one business."""

    id: str = Field(default_factory=new_id, description="Document id")
    business_id: str = Field(..., description="Owning business document id")
    review_id: Optional[str] = Field(None, description="External review id, unique")
    user_id: Optional[str] = None
    user_name: str = Field("Anonymous", description="Review author display name")
    author_photo_url: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    verified: bool = False
    helpful: int = 0
    source: str = Field(ReviewSource.MANUAL.value, description="ReviewSource value")
    source_url: Optional[str] = None
    import_batch_id: Optional[str] = None
    original_create_time: Optional[str] = None
    original_update_time: Optional[str] = None
    reply: Optional[ReviewReply] = None
    is_displayed: bool = True
    flagged: bool = False
    keywords: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    synced_at: Optional[datetime] = None


class ImportBatch(BaseEntity):
    """Bookkeeping record for one import run."""

    id: str = Field(default_factory=new_id)
    import_type: str = Field(..., description="review_import or business_import")
    imported_by: Optional[str] = None
    imported_at: datetime = Field(default_factory=utc_now)
    status: ImportStatus = ImportStatus.PROCESSING
    business_count: Optional[int] = None
    review_count: Optional[int] = None
    source: str = "manual"
    source_metadata: Optional[dict[str, Any]] = None
    results: Optional[dict[str, int]] = None
    errors: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None


class SyncQueueItem(BaseEntity):
    """A request to fetch fresh reviews for one business."""

    id: str = Field(default_factory=new_id)
    business_id: str
    place_id: str
    priority: int = Field(5, le=10, description="1-10, higher first; negative pauses the item")
    status: QueueItemStatus = QueueItemStatus.PENDING
    requested_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    results: Optional[dict[str, int]] = None


class SyncLog(BaseEntity):
    """Audit entry for one review sync of one business."""

    id: str = Field(default_factory=new_id)
    business_id: str
    queue_id: Optional[str] = None
    status: SyncLogStatus = SyncLogStatus.STARTED
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    reviews_fetched: int = 0
    reviews_filtered: int = 0
    reviews_imported: int = 0
    reviews_duplicate: int = 0
    error: Optional[str] = None


# =============================================================================
# Incoming Records
# =============================================================================


class IncomingReview(BaseModel):
    """A review record arriving from a CSV upload, an API call or a review source."""

    model_config = ConfigDict(extra="ignore")

    review_id: Optional[str] = Field(None, description="External review id")
    rating: float = Field(..., description="Raw rating; clamped to 1-5 on insert")
    comment: str = ""
    user_name: Optional[str] = None
    user_id: Optional[str] = None
    author_photo_url: Optional[str] = None

    # Business hints, tried in order by the matcher
    place_id: Optional[str] = None
    business_place_id: Optional[str] = None
    business_id: Optional[str] = None
    business_name: Optional[str] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None

    verified: Optional[bool] = None
    helpful: Optional[int] = None
    source: Optional[str] = None
    source_url: Optional[str] = None
    original_create_time: Optional[str] = None
    original_update_time: Optional[str] = None

    reply_text: Optional[str] = None
    reply_created_at: Optional[str] = None
    reply_author_name: Optional[str] = None

    @property
    def resolved_place_id(self) -> Optional[str]:
        return self.place_id or self.business_place_id


class IncomingBusiness(BaseModel):
    """A business listing record for bulk import."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = None
    url_path: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    category_id: Optional[str] = None
    services: list[Any] = Field(default_factory=list)
    coordinates: Optional[dict[str, float]] = None
    hours: Optional[dict[str, Any]] = None
    rating: Optional[float] = Field(None, ge=0.0, le=5.0)
    review_count: Optional[int] = Field(None, ge=0)
    place_id: Optional[str] = None
    cid: Optional[str] = None
