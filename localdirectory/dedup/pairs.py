"""Pairwise duplicate detection across review sources.

The same review often reaches the directory twice: once from a CSV export and
once from the live review API, with different ids. Pairs are scored on author,
rating, text and posting date; the copy from the more authoritative source is
kept and the other one is hidden (flagged, never deleted).
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from localdirectory.matching.normalize import normalize_text, string_similarity
from localdirectory.models.results import (
    AutoFlagResult,
    DuplicatePair,
    DuplicateReport,
    ResolutionAction,
    ResolutionResult,
    ReviewSummary,
)
from localdirectory.models.schemas import Review, source_authority
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)

DUPLICATE_CONFIDENCE = 0.7
SUMMARY_COMMENT_LENGTH = 100


@dataclass
class DuplicateScore:
    is_duplicate: bool
    confidence: float
    reasons: list[str] = field(default_factory=list)


class DuplicatePairRef(BaseModel):
    """A pair of stored reviews to reconcile, by document id."""

    primary_id: str = Field(..., description="Review document id")
    duplicate_id: str = Field(..., description="Review document id")
    confidence: float = Field(1.0, ge=0.0, le=1.0)


def score_review_pair(a: Review, b: Review) -> DuplicateScore:
    """Score how likely two reviews are the same review."""
    if a.review_id and a.review_id == b.review_id and a.source == b.source:
        return DuplicateScore(True, 1.0, ["Same review ID from same source"])

    confidence = 0.0
    reasons: list[str] = []

    if a.user_name == b.user_name and a.rating == b.rating:
        confidence += 0.3
        reasons.append("Same author and rating")

    similarity = string_similarity(normalize_text(a.comment), normalize_text(b.comment))
    if similarity > 0.9:
        confidence += 0.5
        reasons.append(f"Very similar content ({round(similarity * 100)}% match)")
    elif similarity > 0.8:
        confidence += 0.3
        reasons.append(f"Similar content ({round(similarity * 100)}% match)")

    days_apart = abs((a.created_at - b.created_at).total_seconds()) / 86400
    if days_apart <= 1:
        confidence += 0.2
        reasons.append("Posted within 1 day")
    elif days_apart <= 7:
        confidence += 0.1
        reasons.append("Posted within 1 week")

    confidence = round(confidence, 2)
    return DuplicateScore(confidence >= DUPLICATE_CONFIDENCE, confidence, reasons)


def _summarize(review: Review) -> ReviewSummary:
    comment = review.comment
    if len(comment) > SUMMARY_COMMENT_LENGTH:
        comment = comment[:SUMMARY_COMMENT_LENGTH] + "..."
    return ReviewSummary(
        id=review.id,
        review_id=review.review_id,
        source=review.source,
        author=review.user_name,
        rating=review.rating,
        comment=comment,
        created_at=review.created_at,
    )


class DuplicateResolver:
    """Find, resolve and auto-flag duplicate reviews of one business."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def _reviews(self, business_id: str) -> list[Review]:
        rows = self._store.find(
            Collections.REVIEWS, {"business_id": business_id}, order_by="created_at"
        )
        return [Review.from_db_row(row) for row in rows]

    def find_duplicates(
        self, business_id: str, review_id: Optional[str] = None
    ) -> DuplicateReport:
        """Scan every pair once; a review found as a duplicate is not reused as a primary.

        With review_id, only that review is used as the primary.
        """
        reviews = self._reviews(business_id)
        if len(reviews) < 2:
            return DuplicateReport(total=len(reviews))

        pairs: list[DuplicatePair] = []
        processed: set[str] = set()

        for i, primary in enumerate(reviews):
            if review_id and primary.review_id != review_id:
                continue
            if primary.id in processed:
                continue
            for candidate in reviews[i + 1:]:
                if candidate.id in processed:
                    continue
                score = score_review_pair(primary, candidate)
                if score.is_duplicate:
                    pairs.append(
                        DuplicatePair(
                            primary=_summarize(primary),
                            duplicate=_summarize(candidate),
                            confidence=score.confidence,
                            reasons=score.reasons,
                        )
                    )
                    processed.add(candidate.id)
            processed.add(primary.id)

        logger.info(
            "duplicate_scan_completed",
            business_id=business_id,
            total=len(reviews),
            duplicates=len(pairs),
        )
        return DuplicateReport(
            duplicates=pairs,
            total=len(reviews),
            duplicate_count=len(pairs),
            processed=len(processed),
        )

    def resolve(
        self, pairs: list[DuplicatePairRef], dry_run: bool = False
    ) -> ResolutionResult:
        """Keep the higher-authority copy of each pair (newer on a tie), hide the other."""
        result = ResolutionResult(dry_run=dry_run)

        for pair in pairs:
            primary_row = self._store.get(Collections.REVIEWS, pair.primary_id)
            duplicate_row = self._store.get(Collections.REVIEWS, pair.duplicate_id)
            if primary_row is None or duplicate_row is None:
                logger.warning(
                    "duplicate_pair_missing_review",
                    primary_id=pair.primary_id,
                    duplicate_id=pair.duplicate_id,
                )
                continue
            primary = Review.from_db_row(primary_row)
            duplicate = Review.from_db_row(duplicate_row)

            primary_rank = source_authority(primary.source)
            duplicate_rank = source_authority(duplicate.source)
            if primary_rank != duplicate_rank:
                keep, remove = (
                    (primary, duplicate) if primary_rank > duplicate_rank else (duplicate, primary)
                )
                reason = f"Keeping {keep.source} over {remove.source} (higher authority)"
            else:
                keep, remove = (
                    (primary, duplicate)
                    if primary.created_at > duplicate.created_at
                    else (duplicate, primary)
                )
                reason = "Keeping more recent review"

            result.actions.append(
                ResolutionAction(action="remove", review_id=remove.review_id, source=remove.source, reason=reason)
            )
            result.actions.append(
                ResolutionAction(action="keep", review_id=keep.review_id, source=keep.source, reason=reason)
            )

            if not dry_run:
                self._flag(remove, "duplicate_removed")
                result.removed += 1
            result.kept += 1

        logger.info(
            "duplicates_resolved",
            removed=result.removed,
            kept=result.kept,
            dry_run=dry_run,
        )
        return result

    def auto_flag_batch(self, business_id: str, import_batch_id: str) -> AutoFlagResult:
        """Flag reviews from an import batch that duplicate reviews stored before it."""
        reviews = self._reviews(business_id)
        new_reviews = [r for r in reviews if r.import_batch_id == import_batch_id]
        existing = [r for r in reviews if r.import_batch_id != import_batch_id]

        result = AutoFlagResult(checked=len(new_reviews))
        for review in new_reviews:
            for other in existing:
                if score_review_pair(review, other).is_duplicate:
                    self._flag(review, "auto_duplicate_flagged")
                    result.flagged += 1
                    result.flagged_review_ids.append(review.id)
                    break

        if result.flagged:
            logger.info(
                "import_duplicates_flagged",
                business_id=business_id,
                import_batch_id=import_batch_id,
                flagged=result.flagged,
            )
        return result

    def _flag(self, review: Review, keyword: str) -> None:
        self._store.patch(
            Collections.REVIEWS,
            review.id,
            {
                "flagged": True,
                "is_displayed": False,
                "keywords": [*review.keywords, keyword],
            },
        )
