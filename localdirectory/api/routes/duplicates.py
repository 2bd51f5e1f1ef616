"""Duplicate review endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from localdirectory.api.dependencies import get_duplicate_resolver
from localdirectory.api.models import DuplicateResolveRequest
from localdirectory.dedup.pairs import DuplicateResolver
from localdirectory.models.results import AutoFlagResult, DuplicateReport, ResolutionResult

router = APIRouter(prefix="/duplicates", tags=["Duplicates"])


@router.get(
    "/{business_id}",
    response_model=DuplicateReport,
    summary="Find duplicate reviews",
    description="Score every pair of the business's reviews and list the likely duplicates.",
)
async def find_duplicates(
    business_id: str,
    review_id: Optional[str] = Query(None, description="Only compare against this external review id"),
    resolver: DuplicateResolver = Depends(get_duplicate_resolver),
) -> DuplicateReport:
    return resolver.find_duplicates(business_id, review_id=review_id)


@router.post(
    "/{business_id}/resolve",
    response_model=ResolutionResult,
    summary="Resolve duplicate pairs",
    description="Keep the higher-authority review of each pair and hide the other.",
)
async def resolve_duplicates(
    business_id: str,
    request: DuplicateResolveRequest,
    resolver: DuplicateResolver = Depends(get_duplicate_resolver),
) -> ResolutionResult:
    return resolver.resolve(request.pairs, dry_run=request.dry_run)


@router.post(
    "/{business_id}/auto-flag",
    response_model=AutoFlagResult,
    summary="Flag duplicates from an import batch",
)
async def auto_flag(
    business_id: str,
    import_batch_id: str = Query(..., description="Import batch whose reviews are checked"),
    resolver: DuplicateResolver = Depends(get_duplicate_resolver),
) -> AutoFlagResult:
    return resolver.auto_flag_batch(business_id, import_batch_id)
