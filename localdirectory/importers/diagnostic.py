"""Explain, record by record, what an import would do. Writes nothing."""

import structlog

from localdirectory.dedup.checker import DuplicateKind
from localdirectory.importers.reviews import ReviewImporter
from localdirectory.models.results import DiagnosticDetail, DiagnosticResult
from localdirectory.models.schemas import IncomingReview

logger = structlog.get_logger(__name__)


def run_diagnostic(importer: ReviewImporter, records: list[IncomingReview]) -> DiagnosticResult:
    result = DiagnosticResult(total_reviews=len(records))

    for planned in importer.plan(records):
        detail = DiagnosticDetail(
            index=planned.index,
            review_id=planned.record.review_id,
            user_name=planned.record.user_name,
            status="no_business_match",
        )
        if planned.match is None:
            result.business_match_failures += 1
        else:
            result.business_matches += 1
            detail.business_id = planned.match.business.id
            detail.business_name = planned.match.business.name
            detail.match_type = planned.match.match_type.value
            detail.confidence = round(planned.match.confidence, 3)
            if planned.duplicate is None:
                detail.status = "ready"
                result.ready_to_import += 1
            elif planned.duplicate is DuplicateKind.EXACT_ID:
                detail.status = "duplicate_id"
                result.duplicate_ids += 1
            else:
                detail.status = "duplicate_content"
                result.duplicate_content += 1
        result.details.append(detail)

    logger.info(
        "import_diagnostic_completed",
        total=result.total_reviews,
        matched=result.business_matches,
        unmatched=result.business_match_failures,
        duplicate_ids=result.duplicate_ids,
        duplicate_content=result.duplicate_content,
        ready=result.ready_to_import,
    )
    return result
