"""Review and business import endpoints.

Review records arrive as JSON (the admin UI converts uploaded CSV/JSON files
client-side); the CLI covers CSV files on disk.
"""

import structlog
from fastapi import APIRouter, Depends, Query

from localdirectory.api.dependencies import (
    get_business_importer,
    get_review_importer,
    get_store,
)
from localdirectory.api.models import (
    BusinessImportRequest,
    ErrorResponse,
    ReviewImportRequest,
    ReviewRecordsRequest,
)
from localdirectory.core.exceptions import DocumentNotFoundError
from localdirectory.importers.businesses import BusinessImporter
from localdirectory.importers.diagnostic import run_diagnostic
from localdirectory.importers.reviews import ReviewImporter
from localdirectory.models.results import (
    BusinessImportResult,
    BusinessImportStats,
    DiagnosticResult,
    DuplicatePreview,
    ReviewImportResult,
)
from localdirectory.models.schemas import ImportBatch
from localdirectory.store.base import Collections, DocumentStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/imports", tags=["Imports"])


@router.post(
    "/reviews",
    response_model=ReviewImportResult,
    summary="Import reviews",
    description="Match each review to a business, skip duplicates, and insert the rest.",
)
async def import_reviews(
    request: ReviewImportRequest,
    importer: ReviewImporter = Depends(get_review_importer),
) -> ReviewImportResult:
    """
    Import a batch of reviews.

    **Modes:**
    - **simple**: each review must carry the business place id
    - **batch**: place id, business id, name + phone, fuzzy name, then address;
      the run is recorded as an import batch
    """
    logger.info("review_import_requested", mode=request.mode, records=len(request.reviews))
    if request.mode == "simple":
        return importer.simple_import(request.reviews, source=request.source)
    return importer.batch_import(
        request.reviews,
        source=request.source,
        skip_duplicates=request.skip_duplicates,
        source_metadata=request.source_metadata,
        imported_by=request.imported_by,
    )


@router.post(
    "/reviews/preview",
    response_model=DuplicatePreview,
    summary="Preview duplicates",
    description="Dry run: count what a batch import would import, skip, or fail to match.",
)
async def preview_reviews(
    request: ReviewRecordsRequest,
    importer: ReviewImporter = Depends(get_review_importer),
) -> DuplicatePreview:
    return importer.preview_duplicates(request.reviews)


@router.post(
    "/reviews/diagnostic",
    response_model=DiagnosticResult,
    summary="Diagnose a review import",
    description="Dry run with the business match and duplicate status of every record.",
)
async def diagnose_reviews(
    request: ReviewRecordsRequest,
    importer: ReviewImporter = Depends(get_review_importer),
) -> DiagnosticResult:
    return run_diagnostic(importer, request.reviews)


@router.post(
    "/businesses",
    response_model=BusinessImportResult,
    summary="Import businesses",
    description="Insert business listings, skipping ones whose place id or slug already exists.",
)
async def import_businesses(
    request: BusinessImportRequest,
    importer: BusinessImporter = Depends(get_business_importer),
) -> BusinessImportResult:
    return importer.import_batch(
        request.businesses,
        import_source=request.import_source,
        skip_duplicate_check=request.skip_duplicate_check,
    )


@router.get(
    "/stats",
    response_model=BusinessImportStats,
    summary="Directory import statistics",
)
async def import_stats(
    sample_size: int = Query(100, ge=1, le=1000),
    importer: BusinessImporter = Depends(get_business_importer),
) -> BusinessImportStats:
    return importer.stats(sample_size=sample_size)


@router.get(
    "/batches/{batch_id}",
    response_model=ImportBatch,
    summary="Get an import batch",
    responses={
        404: {"model": ErrorResponse, "description": "Import batch not found"},
    },
)
async def get_import_batch(
    batch_id: str,
    store: DocumentStore = Depends(get_store),
) -> ImportBatch:
    row = store.get(Collections.IMPORT_BATCHES, batch_id)
    if row is None:
        raise DocumentNotFoundError(Collections.IMPORT_BATCHES, batch_id)
    return ImportBatch.from_db_row(row)
