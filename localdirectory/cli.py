"""Command line interface for the import and sync pipeline.

Examples:
    # Import a GMB review export, matching businesses by every strategy
    localdirectory import-reviews reviews.csv --mode batch --source gmb_import

    # See what an import would do without writing anything
    localdirectory diagnose reviews.csv

    # Repair review counters across the whole directory
    localdirectory sync-counts --batch-size 5

    # Drain the review sync queue once
    localdirectory process-queue --max-items 10

    # Queue every listing that still has no reviews
    localdirectory zero-reviews --enqueue --priority 7

    # Print the SQL that creates the Supabase tables
    localdirectory schema-sql
"""

import argparse
import json
import asyncio
import sys
from typing import Optional, Sequence

import structlog
import uvicorn
from pydantic import BaseModel

from localdirectory.config.settings import get_settings
from localdirectory.core.exceptions import DirectoryError
from localdirectory.core.logging_config import configure_logging
from localdirectory.dedup.pairs import DuplicatePairRef, DuplicateResolver
from localdirectory.importers.businesses import BusinessImporter
from localdirectory.importers.csv_reader import read_reviews_csv
from localdirectory.importers.diagnostic import run_diagnostic
from localdirectory.importers.reviews import ReviewImporter
from localdirectory.models.schemas import IncomingReview
from localdirectory.store import get_document_store, get_table_creation_sql
from localdirectory.store.base import chunked
from localdirectory.store.supabase_store import SupabaseDocumentStore
from localdirectory.sync.counts import ReviewCountSynchronizer
from localdirectory.sync.processor import ReviewSyncProcessor
from localdirectory.sync.queue import QueueRequest, ReviewSyncQueue
from localdirectory.sync.selection import find_zero_review_businesses

logger = structlog.get_logger(__name__)


def _print(model: BaseModel) -> None:
    print(model.model_dump_json(indent=2))


def _review_importer() -> ReviewImporter:
    settings = get_settings()
    return ReviewImporter(
        get_document_store(),
        name_threshold=settings.name_match_threshold,
        content_threshold=settings.content_match_threshold,
    )


def _read_records(path: str) -> list[IncomingReview]:
    csv_result = read_reviews_csv(path)
    if csv_result.skipped_rows:
        print(
            f"Skipped {len(csv_result.skipped_rows)} unusable rows "
            f"(first lines: {csv_result.skipped_rows[:10]})",
            file=sys.stderr,
        )
    return csv_result.records


# =============================================================================
# Commands
# =============================================================================


def cmd_import_reviews(args: argparse.Namespace) -> int:
    records = _read_records(args.csv)
    if not records:
        print("No importable rows found", file=sys.stderr)
        return 1

    importer = _review_importer()
    if args.mode == "simple":
        result = importer.simple_import(records, source=args.source)
    else:
        result = importer.batch_import(
            records,
            source=args.source,
            source_metadata={"file_name": args.csv},
        )
    _print(result)
    return 0


def cmd_diagnose(args: argparse.Namespace) -> int:
    records = _read_records(args.csv)
    importer = _review_importer()
    if args.preview:
        _print(importer.preview_duplicates(records))
    else:
        _print(run_diagnostic(importer, records))
    return 0


def cmd_sync_counts(args: argparse.Namespace) -> int:
    settings = get_settings()
    synchronizer = ReviewCountSynchronizer(
        get_document_store(),
        batch_size_limit=settings.sync_batch_size_limit,
        max_skip=settings.sync_max_skip,
    )
    if args.check:
        _print(synchronizer.check_for_mismatches(sample_size=args.sample_size))
    else:
        _print(synchronizer.sync_all(batch_size=args.batch_size))
    return 0


def cmd_process_queue(args: argparse.Namespace) -> int:
    processor = ReviewSyncProcessor(get_document_store())
    _print(asyncio.run(processor.process_queue(max_items=args.max_items)))
    return 0


def cmd_refill_queue(args: argparse.Namespace) -> int:
    processor = ReviewSyncProcessor(get_document_store())
    _print(asyncio.run(processor.hourly_queue_refill()))
    return 0


def cmd_daily_sync(args: argparse.Namespace) -> int:
    processor = ReviewSyncProcessor(get_document_store())
    _print(asyncio.run(processor.daily_review_sync()))
    return 0


def cmd_zero_reviews(args: argparse.Namespace) -> int:
    store = get_document_store()
    businesses = find_zero_review_businesses(
        store, limit=args.limit, exclude_in_queue=not args.include_queued
    )
    output = {
        "count": len(businesses),
        "businesses": [
            {"id": b.id, "name": b.name, "place_id": b.place_id} for b in businesses
        ],
    }
    if args.enqueue and businesses:
        queue = ReviewSyncQueue(store, bulk_add_limit=get_settings().queue_bulk_add_limit)
        requests = [QueueRequest(business_id=b.id, place_id=b.place_id) for b in businesses]
        added = skipped = 0
        for chunk in chunked(requests, queue.bulk_add_limit):
            result = queue.bulk_add(chunk, priority=args.priority)
            added += result.added
            skipped += result.skipped
        output["queued"] = {"added": added, "skipped": skipped}
    print(json.dumps(output, indent=2))
    return 0


def cmd_find_duplicates(args: argparse.Namespace) -> int:
    resolver = DuplicateResolver(get_document_store())
    report = resolver.find_duplicates(args.business_id, review_id=args.review_id)
    _print(report)

    if args.resolve and report.duplicates:
        pairs = [
            DuplicatePairRef(
                primary_id=pair.primary.id,
                duplicate_id=pair.duplicate.id,
                confidence=pair.confidence,
            )
            for pair in report.duplicates
        ]
        _print(resolver.resolve(pairs, dry_run=args.dry_run))
    return 0


def cmd_clear_businesses(args: argparse.Namespace) -> int:
    removed = BusinessImporter(get_document_store()).clear_all(confirm=args.yes)
    if removed is None:
        print("Refusing to delete every business without --yes", file=sys.stderr)
        return 1
    print(f"Deleted {removed} businesses")
    return 0


def cmd_schema_sql(args: argparse.Namespace) -> int:
    print(get_table_creation_sql())
    return 0


def cmd_verify_tables(args: argparse.Namespace) -> int:
    ok = SupabaseDocumentStore().check_tables()
    print("All tables accessible" if ok else "Tables missing: run `localdirectory schema-sql`")
    return 0 if ok else 1


def cmd_serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "localdirectory.api.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localdirectory",
        description="Local business directory review import and sync tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--console-logs", action="store_true", help="Human-readable logs instead of JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import-reviews", help="Import reviews from a CSV export")
    p.add_argument("csv", help="Path to the CSV file")
    p.add_argument("--mode", choices=["simple", "batch"], default="batch")
    p.add_argument("--source", default="manual", help="Source label stored on each review")
    p.set_defaults(func=cmd_import_reviews)

    p = sub.add_parser("diagnose", help="Dry run a CSV import and report every record")
    p.add_argument("csv", help="Path to the CSV file")
    p.add_argument("--preview", action="store_true", help="Only print duplicate counts")
    p.set_defaults(func=cmd_diagnose)

    p = sub.add_parser("sync-counts", help="Repair business review counters")
    p.add_argument("--batch-size", type=int, default=5)
    p.add_argument("--check", action="store_true", help="Only sample for mismatches")
    p.add_argument("--sample-size", type=int, default=10)
    p.set_defaults(func=cmd_sync_counts)

    p = sub.add_parser("process-queue", help="Process pending review sync queue items")
    p.add_argument("--max-items", type=int, default=10)
    p.set_defaults(func=cmd_process_queue)

    p = sub.add_parser("refill-queue", help="Top up the review sync queue")
    p.set_defaults(func=cmd_refill_queue)

    p = sub.add_parser("daily-sync", help="Queue stale businesses and process the queue once")
    p.set_defaults(func=cmd_daily_sync)

    p = sub.add_parser("zero-reviews", help="List syncable businesses that have no reviews yet")
    p.add_argument("--limit", type=int, default=100)
    p.add_argument("--include-queued", action="store_true", help="Keep businesses already in the queue")
    p.add_argument("--enqueue", action="store_true", help="Add the businesses found to the sync queue")
    p.add_argument("--priority", type=int, default=5)
    p.set_defaults(func=cmd_zero_reviews)

    p = sub.add_parser("find-duplicates", help="Find duplicate reviews of a business")
    p.add_argument("business_id")
    p.add_argument("--review-id", help="Only compare against this external review id")
    p.add_argument("--resolve", action="store_true", help="Resolve the pairs found")
    p.add_argument("--dry-run", action="store_true", help="With --resolve, report without flagging")
    p.set_defaults(func=cmd_find_duplicates)

    p = sub.add_parser("clear-businesses", help="Delete every business listing")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion")
    p.set_defaults(func=cmd_clear_businesses)

    p = sub.add_parser("schema-sql", help="Print the Supabase table creation SQL")
    p.set_defaults(func=cmd_schema_sql)

    p = sub.add_parser("verify-tables", help="Check that the Supabase tables exist")
    p.set_defaults(func=cmd_verify_tables)

    p = sub.add_parser("serve", help="Run the API server")
    p.add_argument("--host")
    p.add_argument("--port", type=int)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level, json_output=not args.console_logs)
    try:
        return args.func(args)
    except DirectoryError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
