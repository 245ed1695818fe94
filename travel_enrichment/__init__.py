"""Destination enrichment and scoring pipeline."""

from .bulk_writer import BulkWriter, BulkWriteResult
from .col_analyzer import CostOfLivingAnalyzer, compute_analytics
from .enrichment import EnrichmentOrchestrator, write_missing_values_report
from .location_resolver import LocationResolver
from .ranking import DestinationRankingCombiner, write_ranking_report
from .stats import describe, percentile_rank

__all__ = [
    "BulkWriter",
    "BulkWriteResult",
    "CostOfLivingAnalyzer",
    "compute_analytics",
    "EnrichmentOrchestrator",
    "write_missing_values_report",
    "LocationResolver",
    "DestinationRankingCombiner",
    "write_ranking_report",
    "describe",
    "percentile_rank",
]
