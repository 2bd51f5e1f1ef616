"""
Tests for the command line interface.

Commands run against the in-memory store installed by the store fixture.
Logs go to stderr, so stdout holds only the printed result.
"""

import json

import pytest

from localdirectory.cli import build_parser, main
from localdirectory.core.exceptions import ConfigurationError
from localdirectory.store.base import Collections

CSV_TEXT = (
    "businessName,placeId,reviewId,rating,comment,userName\n"
    "Joe's Plumbing,place-joe,r1,5,Great job,Alice\n"
    "Joe's Plumbing,place-joe,r2,4,Quick and tidy,Bob\n"
    "Unknown Place,,r3,3,,Carol\n"
)


@pytest.fixture
def reviews_csv(tmp_path):
    path = tmp_path / "reviews.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return str(path)


@pytest.fixture
def plumber(make_business):
    return make_business("Joe's Plumbing", place_id="place-joe")


class TestParser:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args(["import-reviews", "reviews.csv"])

        assert args.mode == "batch"
        assert args.source == "manual"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for the CLI commands."""

    def test_import_reviews(self, store, plumber, reviews_csv, capsys):
        exit_code = main(["import-reviews", reviews_csv, "--source", "gmb_import"])

        assert exit_code == 0
        result = json.loads(capsys.readouterr().out)
        assert result["successful"] == 2
        assert store.get(Collections.BUSINESSES, plumber.id)["review_count"] == 2
        batch = store.get(Collections.IMPORT_BATCHES, result["import_batch_id"])
        assert batch["source_metadata"] == {"file_name": reviews_csv}

    def test_import_reviews_simple_mode(self, store, plumber, reviews_csv, capsys):
        assert main(["import-reviews", reviews_csv, "--mode", "simple"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["successful"] == 2
        assert result["import_batch_id"] is None

    def test_import_reviews_without_usable_rows(self, store, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("reviewId,rating\nr1,5\n", encoding="utf-8")

        assert main(["import-reviews", str(path)]) == 1

    def test_diagnose_writes_nothing(self, store, plumber, reviews_csv, capsys):
        assert main(["diagnose", reviews_csv]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["ready_to_import"] == 2
        assert store.count(Collections.REVIEWS) == 0

    def test_sync_counts_check(self, store, plumber, make_review, capsys):
        make_review(plumber.id)

        assert main(["sync-counts", "--check"]) == 0

        assert json.loads(capsys.readouterr().out)["mismatches"] == 1

    def test_sync_counts(self, store, plumber, make_review, capsys):
        make_review(plumber.id)

        assert main(["sync-counts"]) == 0

        assert json.loads(capsys.readouterr().out)["updated"] == 1
        assert store.get(Collections.BUSINESSES, plumber.id)["review_count"] == 1

    def test_find_duplicates(self, store, plumber, make_review, capsys):
        make_review(plumber.id, review_id="a", user_name="Alice", comment="Great job")
        make_review(plumber.id, review_id="b", user_name="Alice", comment="Great job")

        assert main(["find-duplicates", plumber.id]) == 0

        assert json.loads(capsys.readouterr().out)["duplicate_count"] == 1

    def test_clear_businesses_requires_yes(self, store, plumber):
        assert main(["clear-businesses"]) == 1
        assert store.count(Collections.BUSINESSES) == 1

        assert main(["clear-businesses", "--yes"]) == 0
        assert store.count(Collections.BUSINESSES) == 0

    def test_schema_sql(self, capsys):
        assert main(["schema-sql"]) == 0

        assert "review_sync_queue" in capsys.readouterr().out

    def test_directory_error_returns_one(self, store, monkeypatch, capsys):
        def refuse(args):
            raise ConfigurationError("GEOscraper API token not configured")

        monkeypatch.setattr("localdirectory.cli.cmd_process_queue", refuse)

        assert main(["process-queue"]) == 1
        assert "not configured" in capsys.readouterr().err

    def test_zero_reviews_enqueue(self, store, plumber, make_business, capsys):
        make_business("Reviewed Co", place_id="place-rev", review_count=3)

        assert main(["zero-reviews", "--enqueue", "--priority", "7"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert [b["id"] for b in result["businesses"]] == [plumber.id]
        assert result["queued"] == {"added": 1, "skipped": 0}
        item = store.find_one(Collections.SYNC_QUEUE, {"business_id": plumber.id})
        assert item["priority"] == 7

    def test_zero_reviews_skips_queued(self, store, plumber, capsys):
        main(["zero-reviews", "--enqueue"])
        capsys.readouterr()

        assert main(["zero-reviews"]) == 0

        assert json.loads(capsys.readouterr().out)["count"] == 0
