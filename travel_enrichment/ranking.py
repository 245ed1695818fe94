"""
Destination ranking: joins city safety scores with cost-of-living
scores into one ordered list.

averageScore = (safetyScore + (100 - overallCostScore)) / 2

Countries in the exclusion set never appear. Each country is capped;
caps are filled in the order the cost-of-living input is iterated
(cheapest first when loaded with load_inputs), so the first records
seen for a country win.
"""

from collections import Counter
from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

import pandas as pd

from travel_enrichment.config import (
    CITY_SAFETY,
    COST_OF_LIVING_ANALYTICS,
    DEFAULT_RANKING_CONFIG,
    RankingConfig,
)
from travel_enrichment.logging_config import get_logger
from travel_enrichment.models import CombinedRecord
from travel_enrichment.slugs import country_from_doc_id

logger = get_logger("ranking")

REPORT_COLUMNS = ["id", "country", "safetyScore", "invertedCostScore", "averageScore"]

ScoredId = Tuple[str, float]


class DestinationRankingCombiner:
    """Combines safety and cost-of-living signals into a ranking."""

    def __init__(self, config: RankingConfig = DEFAULT_RANKING_CONFIG):
        self.config = config

    def combine(
        self,
        safety_records: Sequence[ScoredId],
        cost_records: Sequence[ScoredId],
    ) -> List[CombinedRecord]:
        """
        Args:
            safety_records: (location id, safety score) pairs
            cost_records: (location id, overall cost score) pairs, in priority order

        Returns:
            Combined records sorted by average score, highest first
        """
        safety_by_id: Dict[str, float] = dict(safety_records)
        taken: Counter = Counter()
        combined: List[CombinedRecord] = []

        for location_id, cost_score in cost_records:
            country = country_from_doc_id(location_id)
            if self.config.is_excluded(country):
                continue
            if taken[country] >= self.config.cap_for(country):
                continue

            safety = safety_by_id.get(location_id)
            if safety is None:
                continue

            inverted = 100 - cost_score
            combined.append(CombinedRecord(
                id=location_id,
                country=country,
                safety_score=safety,
                inverted_cost_score=inverted,
                average_score=(safety + inverted) / 2,
            ))
            taken[country] += 1

        # sorted() is stable: equal averages keep input order
        return sorted(combined, key=lambda r: r.average_score, reverse=True)


def load_inputs(store, n: int) -> Tuple[List[ScoredId], List[ScoredId]]:
    """
    Read the ranking inputs from the store.

    Returns:
        (top n city safety scores, descending;
         bottom n overall cost scores, ascending)
    """
    safety_docs = store.query(CITY_SAFETY, order_by="score", descending=True, limit=n)
    safety = [(doc_id, float(data["score"])) for doc_id, data in safety_docs if "score" in data]

    cost_docs = store.query(COST_OF_LIVING_ANALYTICS, order_by="scores.overall", limit=n)
    cost = []
    for doc_id, data in cost_docs:
        overall = (data.get("scores") or {}).get("overall")
        if overall is None:
            logger.warning(f"Analytics {doc_id} has no overall score", extra={"doc_id": doc_id})
            continue
        cost.append((doc_id, float(overall)))

    logger.info(
        "Loaded ranking inputs",
        extra={"safety_count": len(safety), "cost_count": len(cost)}
    )
    return safety, cost


def ranking_frame(records: Sequence[CombinedRecord]) -> pd.DataFrame:
    """Ranking as a DataFrame with stored column names, in rank order."""
    rows = [
        {
            "id": r.id,
            "country": r.country,
            "safetyScore": r.safety_score,
            "invertedCostScore": r.inverted_cost_score,
            "averageScore": r.average_score,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def write_ranking_report(records: Sequence[CombinedRecord], path: Union[str, Path]) -> Path:
    """Write the ranking to CSV and return the file path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ranking_frame(records).to_csv(path, index=False, float_format="%.2f")
    logger.info(f"Wrote ranking report with {len(records)} rows", extra={"path": str(path)})
    return path
