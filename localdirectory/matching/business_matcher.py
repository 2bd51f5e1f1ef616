"""Match incoming review records to directory businesses.

A matcher is built once per import batch from the candidate businesses and
then answers every record in the batch from memory. Strategies are tried
from most to least reliable and the first hit wins:

    1. place_id     exact place identifier               confidence 1.0
    2. business_id  caller supplied the document id       confidence 1.0
    3. name_phone   normalized name and phone both equal  confidence 0.95
    4. fuzzy_name   best name similarity above threshold  confidence = similarity
    5. address      normalized address containment        confidence 0.8

Example:
    matcher = BusinessMatcher(businesses, name_threshold=0.85)
    match = matcher.match(record)
    if match:
        print(match.business.id, match.match_type, match.confidence)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import structlog

from localdirectory.matching.normalize import (
    normalize_address,
    normalize_business_name,
    normalize_phone,
    string_similarity,
)
from localdirectory.models.schemas import Business, IncomingReview

logger = structlog.get_logger(__name__)


class MatchType(str, Enum):
    PLACE_ID = "place_id"
    BUSINESS_ID = "business_id"
    NAME_PHONE = "name_phone"
    FUZZY_NAME = "fuzzy_name"
    ADDRESS = "address"


@dataclass(frozen=True)
class BusinessMatch:
    business: Business
    confidence: float
    match_type: MatchType


@dataclass(frozen=True)
class _Candidate:
    business: Business
    name: str
    phone: str
    address: str


class BusinessMatcher:
    """In-memory index of businesses answering match queries for one batch."""

    def __init__(self, businesses: Iterable[Business], name_threshold: float = 0.85):
        self.name_threshold = name_threshold
        self._by_place_id: dict[str, Business] = {}
        self._by_id: dict[str, Business] = {}
        self._candidates: list[_Candidate] = []
        for business in businesses:
            self.add(business)

    def __len__(self) -> int:
        return len(self._by_id)

    def add(self, business: Business) -> None:
        """Index a business. The first business seen for a place id keeps it."""
        self._by_id[business.id] = business
        if business.place_id and business.place_id not in self._by_place_id:
            self._by_place_id[business.place_id] = business
        self._candidates.append(
            _Candidate(
                business=business,
                name=normalize_business_name(business.name),
                phone=normalize_phone(business.phone),
                address=normalize_address(business.address),
            )
        )

    def get(self, business_id: str) -> Optional[Business]:
        return self._by_id.get(business_id)

    def match_by_place_id(self, record: IncomingReview) -> Optional[BusinessMatch]:
        """Strict mode: only the exact place identifier counts."""
        place_id = record.resolved_place_id
        if not place_id:
            return None
        business = self._by_place_id.get(place_id)
        if business is None:
            return None
        return BusinessMatch(business, 1.0, MatchType.PLACE_ID)

    def match(self, record: IncomingReview) -> Optional[BusinessMatch]:
        """Run every strategy in order and return the first match."""
        match = self.match_by_place_id(record)
        if match:
            return match

        if record.business_id and record.business_id in self._by_id:
            return BusinessMatch(self._by_id[record.business_id], 1.0, MatchType.BUSINESS_ID)

        name = normalize_business_name(record.business_name)

        phone = normalize_phone(record.business_phone)
        if name and phone:
            for candidate in self._candidates:
                if candidate.name == name and candidate.phone == phone:
                    return BusinessMatch(candidate.business, 0.95, MatchType.NAME_PHONE)

        if name:
            match = self._best_fuzzy_name(name)
            if match:
                return match

        address = normalize_address(record.business_address)
        if address:
            for candidate in self._candidates:
                if candidate.address and (
                    address in candidate.address or candidate.address in address
                ):
                    return BusinessMatch(candidate.business, 0.8, MatchType.ADDRESS)

        return None

    def _best_fuzzy_name(self, name: str) -> Optional[BusinessMatch]:
        best: Optional[_Candidate] = None
        best_score = 0.0
        for candidate in self._candidates:
            if not candidate.name:
                continue
            score = string_similarity(name, candidate.name)
            if score > best_score:
                best, best_score = candidate, score
        if best is not None and best_score > self.name_threshold:
            return BusinessMatch(best.business, best_score, MatchType.FUZZY_NAME)
        return None
