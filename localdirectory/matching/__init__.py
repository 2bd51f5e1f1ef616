"""Business matching and text similarity helpers."""

from localdirectory.matching.business_matcher import BusinessMatch, BusinessMatcher, MatchType
from localdirectory.matching.normalize import (
    comment_similarity,
    normalize_address,
    normalize_business_name,
    normalize_phone,
    normalize_text,
    same_author,
    string_similarity,
)
