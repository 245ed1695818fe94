"""
Cost-of-living analytics.

Reads every cost-of-living record, scores each tracked metric as the
percentile rank of the location's price among all locations reporting
that metric, and stores one analytics document per location.

Enhanced with:
- Data-driven metric iteration (name/extractor pairs)
- Sparse output: unreported (<= 0) metrics are neither scored nor
  included in other locations' samples
- Overall cost score (mean of cost metric scores)
- Fail-fast batch semantics: any read, parse or write error aborts the run
"""

import statistics
from typing import Dict, Iterable, List

from pydantic import ValidationError

from travel_enrichment.config import COST_OF_LIVING, COST_OF_LIVING_ANALYTICS
from travel_enrichment.document_store import WriteOp, doc_path
from travel_enrichment.errors import PersistenceError
from travel_enrichment.logging_config import get_logger, metrics, new_request_id
from travel_enrichment.models import (
    METRIC_EXTRACTORS,
    NON_COST_METRICS,
    CostOfLivingAnalytics,
    CostOfLivingRecord,
    MetricStats,
)
from travel_enrichment.slugs import location_doc_id
from travel_enrichment.stats import describe, percentile_rank

logger = get_logger("analyzer")


def build_samples(records: Iterable[CostOfLivingRecord]) -> Dict[str, List[float]]:
    """Sorted positive values of every tracked metric across all records."""
    samples: Dict[str, List[float]] = {name: [] for name, _ in METRIC_EXTRACTORS}
    for record in records:
        for name, extract in METRIC_EXTRACTORS:
            value = extract(record)
            if value > 0:
                samples[name].append(value)
    for sample in samples.values():
        sample.sort()
    return samples


def compute_analytics(records: List[CostOfLivingRecord]) -> List[CostOfLivingAnalytics]:
    """
    Score every record against the full dataset.

    Args:
        records: All cost-of-living records

    Returns:
        One CostOfLivingAnalytics per record, in input order
    """
    samples = build_samples(records)
    metric_stats: Dict[str, MetricStats] = {
        name: describe(sample) for name, sample in samples.items() if sample
    }

    results = []
    for record in records:
        scores: Dict[str, float] = {}
        stats: Dict[str, MetricStats] = {}
        for name, extract in METRIC_EXTRACTORS:
            value = extract(record)
            if value <= 0:
                continue
            scores[name] = percentile_rank(samples[name], value)
            stats[name] = metric_stats[name]

        cost_scores = [score for name, score in scores.items() if name not in NON_COST_METRICS]
        if cost_scores:
            scores["overall"] = statistics.fmean(cost_scores)

        results.append(CostOfLivingAnalytics(
            city=record.city,
            country=record.country,
            scores=scores,
            stats=stats,
        ))
    return results


class CostOfLivingAnalyzer:
    """Recomputes and stores analytics for the whole cost-of-living collection."""

    def __init__(self, store, writer):
        self.store = store
        self.writer = writer

    def load_records(self) -> List[CostOfLivingRecord]:
        """
        Raises:
            PersistenceError: On read failure or any malformed record
        """
        records = []
        for doc_id, data in self.store.stream(COST_OF_LIVING):
            try:
                records.append(CostOfLivingRecord.model_validate(data))
            except ValidationError as e:
                metrics.record_error("malformed_cost_of_living")
                raise PersistenceError(f"Malformed cost-of-living record {doc_id}: {e}") from e
        return records

    def analyze_and_store(self) -> List[CostOfLivingAnalytics]:
        """
        Run the full analysis and upsert every analytics document.

        Returns:
            The stored analytics records

        Raises:
            PersistenceError: Read/parse failure, or RetryExhausted on write failure
        """
        run_id = new_request_id()
        records = self.load_records()
        logger.info(
            f"Loaded {len(records)} cost-of-living records",
            extra={"run_id": run_id, "record_count": len(records)}
        )

        analytics = compute_analytics(records)
        ops = [
            WriteOp.set(
                doc_path(COST_OF_LIVING_ANALYTICS, location_doc_id(item.city, item.country)),
                item.to_document(),
            )
            for item in analytics
        ]
        result = self.writer.commit_all(ops)
        result.raise_for_error()

        logger.info(
            f"Stored analytics for {result.succeeded} locations",
            extra={"run_id": run_id, "written_count": result.succeeded}
        )
        return analytics
