"""Review import pipeline.

Every import mode runs the same three steps per record:

    1. resolve the business (strict place id, or the full matcher cascade)
    2. skip the record if it duplicates a stored review (id, then author + text)
    3. insert it and afterwards repair the business's review counters

Modes:
    simple_import      strict place-id matching, no bookkeeping (CSV / admin uploads)
    batch_import       full matching, ImportBatch record, per-strategy match counts
    import_prematched  records already carrying business_id or place id (review sync)
    preview_duplicates dry run reporting what batch_import would skip

Example:
    importer = ReviewImporter(get_document_store())
    result = importer.batch_import(records, source="gmb_import")
    print(result.successful, result.duplicates, result.business_matches)
"""

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional

import structlog

from localdirectory.core.exceptions import DirectoryError, DocumentStoreError
from localdirectory.dedup.checker import DuplicateKind, ImportDuplicateChecker
from localdirectory.matching.business_matcher import BusinessMatch, BusinessMatcher
from localdirectory.models.results import (
    BulkReviewImportResult,
    DuplicatePreview,
    ImportFailure,
    ReviewImportResult,
)
from localdirectory.models.schemas import (
    Business,
    ImportBatch,
    ImportStatus,
    IncomingReview,
    Review,
    ReviewReply,
    ReviewSource,
    parse_timestamp,
    utc_now,
)
from localdirectory.monitoring.metrics import record_business_match, record_import_outcome
from localdirectory.store.base import Collections, DocumentStore
from localdirectory.sync.counts import ReviewCountSynchronizer

logger = structlog.get_logger(__name__)

# Failures logged individually per import; the rest only show up in the result
LOGGED_FAILURES = 10
MAX_ERROR_MESSAGES = 10


def clamp_rating(rating: float) -> int:
    """Round half-up and clamp into the 1-5 star range."""
    if rating is None or math.isnan(rating):
        return 1
    return max(1, min(5, int(math.floor(rating + 0.5))))


def build_review_row(
    record: IncomingReview,
    business_id: str,
    *,
    source: str,
    import_batch_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Shape an incoming record into a stored review document."""
    now = now or utc_now()
    reply = None
    if record.reply_text:
        reply = ReviewReply(
            text=record.reply_text,
            created_at=parse_timestamp(record.reply_created_at) or now,
            author_name=record.reply_author_name or "Business Owner",
        )
    review = Review(
        business_id=business_id,
        review_id=record.review_id,
        user_id=record.user_id,
        user_name=record.user_name or "Anonymous",
        author_photo_url=record.author_photo_url,
        rating=clamp_rating(record.rating),
        comment=record.comment.strip(),
        verified=bool(record.verified),
        helpful=record.helpful or 0,
        source=record.source or source,
        source_url=record.source_url,
        import_batch_id=import_batch_id,
        original_create_time=record.original_create_time,
        original_update_time=record.original_update_time,
        reply=reply,
        created_at=parse_timestamp(record.original_create_time) or now,
        synced_at=now,
    )
    return review.to_db_row()


@dataclass
class PlannedRecord:
    """What the importer would do with one record."""

    index: int
    record: IncomingReview
    match: Optional[BusinessMatch]
    duplicate: Optional[DuplicateKind]


class ReviewImporter:
    """Imports review records into the document store."""

    def __init__(
        self,
        store: DocumentStore,
        name_threshold: float = 0.85,
        content_threshold: float = 0.9,
    ):
        self._store = store
        self.name_threshold = name_threshold
        self.content_threshold = content_threshold
        self._counts = ReviewCountSynchronizer(store)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _full_matcher(self) -> BusinessMatcher:
        rows = self._store.find(Collections.BUSINESSES)
        return BusinessMatcher(
            (Business.from_db_row(row) for row in rows),
            name_threshold=self.name_threshold,
        )

    def _place_id_matcher(self, records: list[IncomingReview]) -> BusinessMatcher:
        place_ids = [r.resolved_place_id for r in records if r.resolved_place_id]
        rows = self._store.find_in(Collections.BUSINESSES, "place_id", place_ids)
        return BusinessMatcher(
            (Business.from_db_row(row) for row in rows),
            name_threshold=self.name_threshold,
        )

    def _checker(self, records: list[IncomingReview]) -> ImportDuplicateChecker:
        checker = ImportDuplicateChecker(self._store, self.content_threshold)
        checker.prefetch_review_ids(r.review_id for r in records)
        return checker

    def _repair_counters(self, business_ids: set[str]) -> int:
        repaired = 0
        for business_id in business_ids:
            try:
                if self._counts.repair_business(business_id):
                    repaired += 1
            except DirectoryError as e:
                logger.warning(
                    "business_stats_update_failed",
                    business_id=business_id,
                    error=str(e),
                )
        return repaired

    @staticmethod
    def _fail(
        result: ReviewImportResult,
        index: int,
        record: IncomingReview,
        reason: str,
        message: str,
    ) -> None:
        result.failed += 1
        result.error_summary[reason] = result.error_summary.get(reason, 0) + 1
        result.errors.append(
            ImportFailure(index=index, review_id=record.review_id, reason=reason, message=message)
        )
        if len(result.errors) <= LOGGED_FAILURES:
            logger.warning(
                "review_import_record_failed",
                index=index,
                review_id=record.review_id,
                reason=reason,
                message=message,
            )

    @staticmethod
    def _duplicate(result: ReviewImportResult, kind: DuplicateKind) -> None:
        result.duplicates += 1
        result.error_summary[kind.value] = result.error_summary.get(kind.value, 0) + 1

    # -------------------------------------------------------------------------
    # Import modes
    # -------------------------------------------------------------------------

    def simple_import(
        self,
        records: list[IncomingReview],
        source: str = ReviewSource.MANUAL.value,
    ) -> ReviewImportResult:
        """Import records whose business is identified by place id only."""
        logger.info("simple_review_import_started", records=len(records), source=source)

        matcher = self._place_id_matcher(records)
        checker = self._checker(records)
        result = ReviewImportResult()
        touched: set[str] = set()
        now = utc_now()

        for index, record in enumerate(records):
            place_id = record.resolved_place_id
            if not place_id:
                self._fail(result, index, record, "missing_place_id", "Record has no place id")
                continue

            match = matcher.match_by_place_id(record)
            if match is None:
                self._fail(
                    result, index, record, "place_id_not_found",
                    f"No business with place id {place_id}",
                )
                continue

            kind = checker.check(record, match.business.id)
            if kind is not None:
                self._duplicate(result, kind)
                continue

            try:
                row = self._store.insert(
                    Collections.REVIEWS,
                    build_review_row(record, match.business.id, source=source, now=now),
                )
            except DocumentStoreError as e:
                self._fail(result, index, record, "database_error", str(e))
                continue

            checker.remember(row)
            touched.add(match.business.id)
            result.successful += 1

        self._repair_counters(touched)
        self._record_metrics("simple", result)
        logger.info(
            "simple_review_import_completed",
            successful=result.successful,
            failed=result.failed,
            duplicates=result.duplicates,
            error_summary=result.error_summary,
        )
        return result

    def batch_import(
        self,
        records: list[IncomingReview],
        source: str = ReviewSource.MANUAL.value,
        skip_duplicates: bool = True,
        source_metadata: Optional[dict[str, Any]] = None,
        imported_by: Optional[str] = None,
    ) -> ReviewImportResult:
        """Import records using the full matching cascade, tracked by an ImportBatch.

        The batch document moves processing -> completed, or -> failed when
        something outside per-record handling blows up (the error is re-raised).
        """
        batch = ImportBatch(
            import_type="review_import",
            imported_by=imported_by,
            review_count=len(records),
            source="csv_upload" if (source_metadata or {}).get("file_name") else "manual",
            source_metadata=source_metadata,
        )
        self._store.insert(Collections.IMPORT_BATCHES, batch.to_db_row())
        logger.info(
            "review_import_started",
            import_batch_id=batch.id,
            records=len(records),
            source=source,
            skip_duplicates=skip_duplicates,
        )

        result = ReviewImportResult(import_batch_id=batch.id)
        touched: set[str] = set()
        now = utc_now()

        try:
            matcher = self._full_matcher()
            checker = self._checker(records) if skip_duplicates else None
            matches: Counter[str] = Counter()

            for index, record in enumerate(records):
                match = matcher.match(record)
                if match is None:
                    self._fail(
                        result, index, record, "business_not_found",
                        f"No matching business for {record.business_name or record.resolved_place_id or 'record'}",
                    )
                    continue
                matches[match.match_type.value] += 1
                record_business_match(match.match_type.value)

                if checker is not None:
                    kind = checker.check(record, match.business.id)
                    if kind is not None:
                        self._duplicate(result, kind)
                        continue

                try:
                    row = self._store.insert(
                        Collections.REVIEWS,
                        build_review_row(
                            record,
                            match.business.id,
                            source=source,
                            import_batch_id=batch.id,
                            now=now,
                        ),
                    )
                except DocumentStoreError as e:
                    self._fail(result, index, record, "database_error", str(e))
                    continue

                if checker is not None:
                    checker.remember(row)
                touched.add(match.business.id)
                result.successful += 1

            result.business_matches = dict(matches)
            self._repair_counters(touched)

            self._store.patch(
                Collections.IMPORT_BATCHES,
                batch.id,
                {
                    "status": ImportStatus.COMPLETED,
                    "completed_at": utc_now(),
                    "business_count": len(touched),
                    "results": {
                        "created": result.successful,
                        "updated": 0,
                        "failed": result.failed,
                        "duplicates": result.duplicates,
                    },
                    "errors": [f.message for f in result.errors[:MAX_ERROR_MESSAGES]],
                },
            )
        except Exception as e:
            logger.error("review_import_failed", import_batch_id=batch.id, error=str(e))
            self._store.patch(
                Collections.IMPORT_BATCHES,
                batch.id,
                {"status": ImportStatus.FAILED, "completed_at": utc_now(), "errors": [str(e)]},
            )
            raise

        if result.successful == 0 and result.duplicates > 0:
            logger.warning(
                "review_import_all_duplicates",
                import_batch_id=batch.id,
                duplicates=result.duplicates,
            )

        self._record_metrics("batch", result)
        logger.info(
            "review_import_completed",
            import_batch_id=batch.id,
            successful=result.successful,
            failed=result.failed,
            duplicates=result.duplicates,
            business_matches=result.business_matches,
        )
        return result

    def import_prematched(
        self,
        records: list[IncomingReview],
        skip_duplicate_check: bool = False,
        source: str = ReviewSource.GMB_API.value,
    ) -> BulkReviewImportResult:
        """Import records that already name their business.

        Place ids are resolved once per distinct id and existing review ids are
        fetched in chunks, so large sync batches cost a handful of queries.
        """
        result = BulkReviewImportResult(total=len(records))

        pending = [r.resolved_place_id for r in records if not r.business_id and r.resolved_place_id]
        by_place_id: dict[str, str] = {}
        for row in self._store.find_in(Collections.BUSINESSES, "place_id", pending):
            by_place_id.setdefault(row["place_id"], row["id"])

        checker = None if skip_duplicate_check else self._checker(records)
        touched: set[str] = set()
        now = utc_now()

        for record in records:
            business_id = record.business_id or by_place_id.get(record.resolved_place_id or "")
            if not business_id:
                result.business_not_found += 1
                continue

            if checker is not None and checker.check(record, business_id) is not None:
                result.duplicates += 1
                continue

            try:
                row = self._store.insert(
                    Collections.REVIEWS,
                    build_review_row(record, business_id, source=source, now=now),
                )
            except DocumentStoreError as e:
                result.errors += 1
                if len(result.error_messages) < MAX_ERROR_MESSAGES:
                    result.error_messages.append(f"{record.review_id or 'review'}: {e}")
                continue

            if checker is not None:
                checker.remember(row)
            touched.add(business_id)
            result.created += 1

        if result.created:
            result.updated_businesses = self._repair_counters(touched)

        record_import_outcome("prematched", "imported", result.created)
        record_import_outcome("prematched", "duplicate", result.duplicates)
        record_import_outcome("prematched", "failed", result.failed)
        logger.info(
            "prematched_review_import_completed",
            total=result.total,
            created=result.created,
            duplicates=result.duplicates,
            business_not_found=result.business_not_found,
            errors=result.errors,
        )
        return result

    # -------------------------------------------------------------------------
    # Dry runs
    # -------------------------------------------------------------------------

    def plan(self, records: list[IncomingReview]) -> Iterator[PlannedRecord]:
        """Walk records exactly as batch_import would, without writing anything.

        Records planned for import are remembered, so repeats later in the
        same batch are reported as duplicates just like a real import.
        """
        matcher = self._full_matcher()
        checker = self._checker(records)

        for index, record in enumerate(records):
            match = matcher.match(record)
            if match is None:
                yield PlannedRecord(index, record, None, None)
                continue
            kind = checker.check(record, match.business.id)
            if kind is None:
                checker.remember(
                    {
                        "review_id": record.review_id,
                        "business_id": match.business.id,
                        "user_name": record.user_name,
                        "comment": record.comment.strip(),
                    }
                )
            yield PlannedRecord(index, record, match, kind)

    def preview_duplicates(self, records: list[IncomingReview]) -> DuplicatePreview:
        preview = DuplicatePreview(total_reviews=len(records))
        for planned in self.plan(records):
            if planned.match is None:
                preview.business_match_failures += 1
            elif planned.duplicate is not None:
                preview.duplicates += 1
                preview.duplicate_details.append(
                    {
                        "index": planned.index,
                        "review_id": planned.record.review_id,
                        "user_name": planned.record.user_name,
                        "business_id": planned.match.business.id,
                        "reason": planned.duplicate.value,
                    }
                )
            else:
                preview.would_import += 1
        return preview

    @staticmethod
    def _record_metrics(mode: str, result: ReviewImportResult) -> None:
        record_import_outcome(mode, "imported", result.successful)
        record_import_outcome(mode, "duplicate", result.duplicates)
        record_import_outcome(mode, "failed", result.failed)
