"""Read review exports (CSV) into IncomingReview records.

Both the camelCase headers of the directory's export format
(businessName, reviewId, userName, reviewDate, ...) and snake_case headers
are accepted. Rows lacking a review id, rating, comment, author, or any way
to find the business are skipped and counted.
"""

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from localdirectory.models.schemas import IncomingReview

logger = structlog.get_logger(__name__)

COLUMN_ALIASES: dict[str, str] = {
    "businessName": "business_name",
    "businessPhone": "business_phone",
    "businessAddress": "business_address",
    "businessId": "business_id",
    "businessPlaceId": "business_place_id",
    "placeId": "place_id",
    "reviewId": "review_id",
    "userName": "user_name",
    "userId": "user_id",
    "authorPhotoUrl": "author_photo_url",
    "reviewDate": "original_create_time",
    "originalCreateTime": "original_create_time",
    "originalUpdateTime": "original_update_time",
    "sourceUrl": "source_url",
    "replyText": "reply_text",
    "replyCreatedAt": "reply_created_at",
}

REQUIRED_FIELDS = ("review_id", "rating", "comment", "user_name")
BUSINESS_HINTS = ("business_name", "place_id", "business_place_id", "business_id")
TRUE_VALUES = {"true", "yes", "1", "y"}


@dataclass
class CsvReadResult:
    records: list[IncomingReview] = field(default_factory=list)
    skipped_rows: list[int] = field(default_factory=list)


def _normalize_row(row: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            continue
        name = COLUMN_ALIASES.get(key.strip(), key.strip())
        if isinstance(value, str):
            value = value.strip()
        if value in ("", None):
            continue
        data[name] = value
    if "verified" in data:
        data["verified"] = str(data["verified"]).lower() in TRUE_VALUES
    return data


def parse_row(row: dict[str, Any]) -> Optional[IncomingReview]:
    """One CSV row to a record, or None when the row is unusable."""
    data = _normalize_row(row)
    if any(name not in data for name in REQUIRED_FIELDS):
        return None
    if not any(name in data for name in BUSINESS_HINTS):
        return None
    try:
        return IncomingReview.model_validate(data)
    except ValidationError:
        return None


def read_reviews_csv(path: str | Path) -> CsvReadResult:
    result = CsvReadResult()
    with open(path, newline="", encoding="utf-8-sig") as handle:
        for line_number, row in enumerate(csv.DictReader(handle), start=2):
            record = parse_row(row)
            if record is None:
                result.skipped_rows.append(line_number)
                continue
            result.records.append(record)

    logger.info(
        "review_csv_read",
        path=str(path),
        records=len(result.records),
        skipped=len(result.skipped_rows),
    )
    return result
