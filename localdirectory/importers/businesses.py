"""Bulk business listing import.

One canonical business per place id and per slug: records colliding with a
stored business (or with an earlier record in the same batch) are skipped,
never merged.
"""

import re
from collections import Counter
from typing import Optional

import structlog

from localdirectory.core.exceptions import DocumentStoreError
from localdirectory.models.results import BusinessImportResult, BusinessImportStats
from localdirectory.models.schemas import Business, IncomingBusiness, PlanTier, utc_now
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)

MAX_ERROR_MESSAGES = 10

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """'Joe's Plumbing & Heating' -> 'joe-s-plumbing-heating'"""
    return _SLUG_INVALID.sub("-", text.lower()).strip("-")


class BusinessImporter:
    """Creates directory listings from import records."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def import_batch(
        self,
        records: list[IncomingBusiness],
        import_source: str = "admin_import",
        skip_duplicate_check: bool = False,
    ) -> BusinessImportResult:
        result = BusinessImportResult(total_processed=len(records))
        candidate_slugs = [r.slug or slugify(r.name) for r in records]

        taken_slugs: set[str] = set()
        taken_place_ids: set[str] = set()
        if not skip_duplicate_check:
            for row in self._store.find_in(Collections.BUSINESSES, "slug", candidate_slugs):
                taken_slugs.add(row["slug"])
            place_ids = [r.place_id for r in records if r.place_id]
            for row in self._store.find_in(Collections.BUSINESSES, "place_id", place_ids):
                taken_place_ids.add(row["place_id"])

        now = utc_now()
        for record in records:
            slug = record.slug or slugify(record.name)

            if not skip_duplicate_check and (
                slug in taken_slugs or (record.place_id and record.place_id in taken_place_ids)
            ):
                result.existing_businesses_skipped += 1
                continue

            business = Business(
                **record.model_dump(exclude={"slug", "rating", "review_count"}),
                slug=slug,
                rating=record.rating or 0.0,
                review_count=record.review_count or 0,
                plan_tier=PlanTier.FREE,
                featured=False,
                priority=0,
                claimed=False,
                verified=False,
                active=True,
                data_source={
                    "primary": import_source,
                    "last_synced_at": now.isoformat(),
                    "sync_status": "synced",
                },
                created_at=now,
                updated_at=now,
            )
            try:
                self._store.insert(Collections.BUSINESSES, business.to_db_row())
            except DocumentStoreError as e:
                result.errors += 1
                if len(result.error_messages) < MAX_ERROR_MESSAGES:
                    result.error_messages.append(f"{record.name}: {e}")
                continue

            taken_slugs.add(slug)
            if record.place_id:
                taken_place_ids.add(record.place_id)
            result.new_businesses_added += 1

        logger.info(
            "business_import_completed",
            total=result.total_processed,
            added=result.new_businesses_added,
            skipped=result.existing_businesses_skipped,
            errors=result.errors,
            import_source=import_source,
        )
        return result

    def stats(self, sample_size: int = 100) -> BusinessImportStats:
        """Directory-wide totals plus coverage figures from a sample."""
        total = self._store.count(Collections.BUSINESSES)
        sample = [
            Business.from_db_row(row)
            for row in self._store.find(Collections.BUSINESSES, limit=sample_size)
        ]
        if not sample:
            return BusinessImportStats(total_businesses=total)

        rated = [b.rating for b in sample if b.rating]
        sources: Counter[str] = Counter(
            (b.data_source or {}).get("primary") or "unknown" for b in sample
        )

        def percent(count: int) -> float:
            return round(count / len(sample) * 100, 1)

        return BusinessImportStats(
            total_businesses=total,
            average_rating=round(sum(rated) / len(rated), 2) if rated else 0.0,
            sample_size=len(sample),
            with_place_id_percent=percent(sum(1 for b in sample if b.place_id)),
            with_reviews_percent=percent(sum(1 for b in sample if b.review_count)),
            source_distribution=dict(sources),
        )

    def clear_all(self, confirm: bool = False) -> Optional[int]:
        """Delete every business listing. Refuses unless confirm is True."""
        if not confirm:
            logger.warning("clear_businesses_refused", reason="confirm flag not set")
            return None
        removed = self._store.delete_all(Collections.BUSINESSES)
        logger.warning("businesses_cleared", removed=removed)
        return removed
