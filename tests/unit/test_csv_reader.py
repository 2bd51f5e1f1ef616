"""
Tests for reading review CSV exports.
"""

from localdirectory.importers.csv_reader import parse_row, read_reviews_csv

HEADER = "businessName,placeId,reviewId,rating,comment,userName,reviewDate,verified\n"


class TestParseRow:
    """Tests for parse_row."""

    def test_camel_case_aliases(self):
        record = parse_row(
            {
                "businessName": " Joe's Plumbing ",
                "reviewId": "r1",
                "rating": "4",
                "comment": "Great",
                "userName": "Alice",
                "reviewDate": "2024-01-02T00:00:00Z",
            }
        )

        assert record.business_name == "Joe's Plumbing"
        assert record.review_id == "r1"
        assert record.rating == 4.0
        assert record.original_create_time == "2024-01-02T00:00:00Z"

    def test_snake_case_headers(self):
        record = parse_row(
            {"place_id": "p1", "review_id": "r1", "rating": "5", "comment": "Ok", "user_name": "Bob"}
        )

        assert record.resolved_place_id == "p1"

    def test_missing_required_field(self):
        assert parse_row({"place_id": "p1", "review_id": "r1", "rating": "5", "user_name": "Bob"}) is None

    def test_missing_business_hint(self):
        assert parse_row({"review_id": "r1", "rating": "5", "comment": "Ok", "user_name": "Bob"}) is None

    def test_bad_rating(self):
        row = {"place_id": "p1", "review_id": "r1", "rating": "five", "comment": "Ok", "user_name": "Bob"}

        assert parse_row(row) is None


class TestReadReviewsCsv:
    """Tests for read_reviews_csv."""

    def test_reads_and_reports_skipped_lines(self, tmp_path):
        path = tmp_path / "reviews.csv"
        path.write_text(
            HEADER
            + "Joe's Plumbing,p1,r1,5,Great job,Alice,2024-01-01,yes\n"
            + "Joe's Plumbing,p1,r2,4,,Bob,2024-01-02,no\n"
            + "Acme Roofing,p2,r3,3,Fine,Carol,,TRUE\n",
            encoding="utf-8",
        )

        result = read_reviews_csv(path)

        assert [r.review_id for r in result.records] == ["r1", "r3"]
        assert result.skipped_rows == [3]
        assert result.records[0].verified is True
        assert result.records[1].verified is True
        assert result.records[1].original_create_time is None

    def test_byte_order_mark(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_text(HEADER + "Joe's Plumbing,p1,r1,5,Great,Alice,,\n", encoding="utf-8-sig")

        result = read_reviews_csv(path)

        assert result.records[0].business_name == "Joe's Plumbing"
