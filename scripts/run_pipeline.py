"""
Run enrichment pipeline jobs against Firestore.

Usage:
    python scripts/run_pipeline.py analyze
    python scripts/run_pipeline.py rank [--output ranking.csv] [--limit 200]
    python scripts/run_pipeline.py enrich [--offset 0] [--limit 100] [--report missing_values_report.csv]
    python scripts/run_pipeline.py normalize-ids COLLECTION
    python scripts/run_pipeline.py copy-collection SOURCE DESTINATION
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from travel_enrichment.api_clients import PexelsClient, PlaceSearchClient, ThroughputClient
from travel_enrichment.bulk_writer import BulkWriter
from travel_enrichment.circuit_breaker import circuit_breakers
from travel_enrichment.col_analyzer import CostOfLivingAnalyzer
from travel_enrichment.config import DEFAULT_RANKING_CONFIG, get_settings
from travel_enrichment.document_store import DocumentStore, init_firestore
from travel_enrichment.enrichment import EnrichmentOrchestrator
from travel_enrichment.errors import EnrichmentError
from travel_enrichment.internet_speed import InternetSpeedService
from travel_enrichment.location_resolver import LocationResolver
from travel_enrichment.logging_config import get_logger, metrics, setup_logging
from travel_enrichment.maintenance import copy_collection, normalize_document_ids
from travel_enrichment.ranking import DestinationRankingCombiner, load_inputs, write_ranking_report

logger = get_logger("cli")


def cmd_analyze(args, settings, store, writer):
    analytics = CostOfLivingAnalyzer(store, writer).analyze_and_store()
    print(f"Stored analytics for {len(analytics)} locations")


def cmd_rank(args, settings, store, writer):
    n = args.limit or DEFAULT_RANKING_CONFIG.input_size
    safety, cost = load_inputs(store, n)
    records = DestinationRankingCombiner(DEFAULT_RANKING_CONFIG).combine(safety, cost)
    path = write_ranking_report(records, args.output)
    print(f"Ranked {len(records)} destinations -> {path}")


def cmd_enrich(args, settings, store, writer):
    resolver = LocationResolver(store, writer, PlaceSearchClient(settings.google_maps_api_key))
    speed_service = InternetSpeedService(
        store,
        writer,
        ThroughputClient(settings.bigquery_project_id),
        timeout=settings.speed_query_timeout_seconds,
    )
    orchestrator = EnrichmentOrchestrator(
        store,
        writer,
        resolver,
        speed_service,
        PexelsClient(settings.pexels_api_key),
        offset=settings.top_destinations_offset if args.offset is None else args.offset,
        limit=settings.top_destinations_limit if args.limit is None else args.limit,
    )
    reports = orchestrator.run(args.report)
    incomplete = sum(1 for r in reports if not r.is_complete)
    print(f"Enriched {len(reports)} destinations ({incomplete} with missing signals) -> {args.report}")


def cmd_normalize_ids(args, settings, store, writer):
    result = normalize_document_ids(store, writer, args.collection)
    result.raise_for_error()
    print(f"Renamed {result.succeeded // 2} documents in {args.collection}")


def cmd_copy_collection(args, settings, store, writer):
    result = copy_collection(store, writer, args.source, args.destination)
    result.raise_for_error()
    print(f"Copied {result.succeeded} documents from {args.source} to {args.destination}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Destination enrichment pipeline")
    parser.add_argument("--console-logs", action="store_true",
                        help="Human-readable logs instead of JSON")
    parser.add_argument("--log-file", action="store_true",
                        help="Also write JSON logs to logs/enrichment.log")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Recompute cost-of-living analytics")
    analyze.set_defaults(func=cmd_analyze)

    rank = sub.add_parser("rank", help="Write the destination ranking CSV")
    rank.add_argument("--output", default="ranking_report.csv")
    rank.add_argument("--limit", type=int, default=None,
                      help="Number of safety and cost records to read")
    rank.set_defaults(func=cmd_rank)

    enrich = sub.add_parser("enrich", help="Enrich top destinations")
    enrich.add_argument("--offset", type=int, default=None)
    enrich.add_argument("--limit", type=int, default=None)
    enrich.add_argument("--report", default="missing_values_report.csv")
    enrich.set_defaults(func=cmd_enrich)

    normalize = sub.add_parser("normalize-ids", help="Normalize document ids of a collection")
    normalize.add_argument("collection")
    normalize.set_defaults(func=cmd_normalize_ids)

    copy = sub.add_parser("copy-collection", help="Copy a collection under the same ids")
    copy.add_argument("source")
    copy.add_argument("destination")
    copy.set_defaults(func=cmd_copy_collection)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        json_output=not args.console_logs,
        log_to_file=args.log_file,
    )

    store = DocumentStore(init_firestore(settings))
    writer = BulkWriter(
        store,
        group_size=settings.bulk_write_group_size,
        max_attempts=settings.bulk_write_max_attempts,
    )

    try:
        args.func(args, settings, store, writer)
    except EnrichmentError as e:
        logger.error(f"{args.command} failed: {e}", extra={"command": args.command})
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        logger.info("Run metrics", extra={
            "run_metrics": metrics.get_metrics(),
            "breakers": circuit_breakers.get_all_status(),
        })
    return 0


if __name__ == "__main__":
    sys.exit(main())
