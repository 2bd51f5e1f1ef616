"""Import-time duplicate detection.

A record is a duplicate when either
    - a stored review already carries its external review id, or
    - the same business has a review by the same author (case-insensitive)
      whose trimmed, lowercased comment is more similar than the threshold.

The checker caches what it has looked up, and reviews inserted during the
batch are fed back through remember(), so a batch that contains the same
review twice keeps only the first copy.
"""

from enum import Enum
from typing import Any, Iterable, Optional

import structlog

from localdirectory.matching.normalize import comment_similarity, same_author
from localdirectory.models.schemas import IncomingReview
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)


class DuplicateKind(str, Enum):
    EXACT_ID = "duplicate_id"
    SIMILAR_CONTENT = "duplicate_content"


class ImportDuplicateChecker:
    """Answers "is this incoming review already stored?" for one import batch."""

    def __init__(self, store: DocumentStore, content_threshold: float = 0.9):
        self._store = store
        self.content_threshold = content_threshold
        self._known_ids: set[str] = set()
        self._looked_up_ids: set[str] = set()
        self._reviews_by_business: dict[str, list[dict[str, Any]]] = {}

    def prefetch_review_ids(self, review_ids: Iterable[Optional[str]]) -> int:
        """Resolve many external ids with chunked queries instead of one each."""
        wanted = [rid for rid in dict.fromkeys(review_ids) if rid and rid not in self._looked_up_ids]
        if not wanted:
            return 0
        rows = self._store.find_in(Collections.REVIEWS, "review_id", wanted)
        found = {row["review_id"] for row in rows if row.get("review_id")}
        self._known_ids.update(found)
        self._looked_up_ids.update(wanted)
        return len(found)

    def has_review_id(self, review_id: Optional[str]) -> bool:
        if not review_id:
            return False
        if review_id in self._known_ids:
            return True
        if review_id in self._looked_up_ids:
            return False
        self._looked_up_ids.add(review_id)
        existing = self._store.find_one(Collections.REVIEWS, {"review_id": review_id})
        if existing:
            self._known_ids.add(review_id)
            return True
        return False

    def _business_reviews(self, business_id: str) -> list[dict[str, Any]]:
        if business_id not in self._reviews_by_business:
            self._reviews_by_business[business_id] = self._store.find(
                Collections.REVIEWS, {"business_id": business_id}
            )
        return self._reviews_by_business[business_id]

    def find_similar(
        self, record: IncomingReview, business_id: str
    ) -> Optional[dict[str, Any]]:
        """Stored review by the same author with near-identical text, if any."""
        if not record.user_name or not record.comment.strip():
            return None
        for existing in self._business_reviews(business_id):
            if not same_author(existing.get("user_name"), record.user_name):
                continue
            if comment_similarity(existing.get("comment"), record.comment) > self.content_threshold:
                return existing
        return None

    def check(self, record: IncomingReview, business_id: str) -> Optional[DuplicateKind]:
        if self.has_review_id(record.review_id):
            return DuplicateKind.EXACT_ID
        if self.find_similar(record, business_id) is not None:
            return DuplicateKind.SIMILAR_CONTENT
        return None

    def remember(self, review_row: dict[str, Any]) -> None:
        """Make a review inserted during this batch visible to later checks."""
        review_id = review_row.get("review_id")
        if review_id:
            self._known_ids.add(review_id)
            self._looked_up_ids.add(review_id)
        business_id = review_row.get("business_id")
        if business_id in self._reviews_by_business:
            self._reviews_by_business[business_id].append(review_row)
