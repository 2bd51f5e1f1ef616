"""Review deduplication: import-time checks and pairwise reconciliation."""

from localdirectory.dedup.checker import DuplicateKind, ImportDuplicateChecker
from localdirectory.dedup.pairs import (
    DuplicatePairRef,
    DuplicateResolver,
    DuplicateScore,
    score_review_pair,
)
