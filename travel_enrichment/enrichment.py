"""
Top-destination enrichment.

Each destination moves through
    FETCHED -> RESOLVING -> SIGNAL_LOOKUP -> ENRICHED | PARTIALLY_ENRICHED -> SAVED
one at a time. Signal lookups (internet speed, safety, cost of living,
photos) are independent: a failure marks the signal missing in the
destination's report and leaves the stored field untouched. A destination
whose location cannot be resolved is skipped. Persistence failures end
the run.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pandas as pd
from pydantic import ValidationError

from travel_enrichment.config import TOP_DESTINATIONS
from travel_enrichment.document_store import WriteOp, doc_path
from travel_enrichment.errors import PhotoProviderError, ResolutionError, SignalLookupError
from travel_enrichment.logging_config import get_logger, metrics, new_request_id
from travel_enrichment.models import (
    CostOfLivingAnalytics,
    LocationMapping,
    MissingValueReport,
    SafetyScore,
    TopDestination,
)

logger = get_logger("enrichment")

REPORT_HEADER = [
    "City",
    "Country",
    "Missing PlaceID",
    "Missing Internet Speed",
    "Missing Safety Score",
    "Missing Cost of Living",
    "Missing Photos",
]


class DestinationState(Enum):
    FETCHED = "fetched"
    RESOLVING = "resolving"
    SIGNAL_LOOKUP = "signal_lookup"
    ENRICHED = "enriched"
    PARTIALLY_ENRICHED = "partially_enriched"
    SAVED = "saved"


# ============================================================================
# Missing-values report
# ============================================================================

def _flag(value: bool) -> str:
    return "true" if value else "false"


def write_missing_values_report(
    reports: Sequence[MissingValueReport],
    path: Union[str, Path] = "missing_values_report.csv"
) -> Path:
    """Write one "true"/"false" row per enriched destination."""
    rows = [
        [
            r.city,
            r.country,
            _flag(r.missing_place_id),
            _flag(r.missing_internet_speed),
            _flag(r.missing_safety_score),
            _flag(r.missing_cost_of_living),
            _flag(r.missing_photos),
        ]
        for r in reports
    ]
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=REPORT_HEADER).to_csv(path, index=False)
    logger.info(f"Wrote missing values report with {len(rows)} rows", extra={"path": str(path)})
    return path


# ============================================================================
# Orchestrator
# ============================================================================

class EnrichmentOrchestrator:
    """Drives top destinations through resolution, signal lookup and save."""

    def __init__(
        self,
        store,
        writer,
        resolver,
        speed_service,
        photo_client,
        offset: int = 0,
        limit: int = 100,
    ):
        self.store = store
        self.writer = writer
        self.resolver = resolver
        self.speed_service = speed_service
        self.photo_client = photo_client
        self.offset = offset
        self.limit = limit

    def run(self, report_path: Optional[Union[str, Path]] = "missing_values_report.csv") -> List[MissingValueReport]:
        """
        Enrich and save the configured slice of top destinations.

        Args:
            report_path: Where to write the missing-values CSV (None to skip)

        Returns:
            One report per destination that was resolved and saved

        Raises:
            PersistenceError: Reading destinations or saving one failed
        """
        run_id = new_request_id()
        destinations = self.fetch_destinations()
        logger.info(
            f"Enriching {len(destinations)} destinations",
            extra={"run_id": run_id, "destination_count": len(destinations)}
        )

        reports = []
        for dest in destinations:
            report = self.process(dest)
            if report is not None:
                reports.append(report)

        if report_path is not None:
            write_missing_values_report(reports, report_path)
        logger.info(
            f"Enrichment finished: {len(reports)} saved, {len(destinations) - len(reports)} skipped",
            extra={"run_id": run_id, "saved_count": len(reports)}
        )
        return reports

    def fetch_destinations(self) -> List[TopDestination]:
        docs = self.store.query(
            TOP_DESTINATIONS,
            order_by="rank",
            offset=self.offset,
            limit=self.limit,
        )
        destinations = []
        for doc_id, data in docs:
            try:
                dest = TopDestination.model_validate(data)
            except ValidationError as e:
                logger.error(f"Failed to parse top destination {doc_id}: {e}", extra={"doc_id": doc_id})
                continue
            dest.id = doc_id
            destinations.append(dest)
        return destinations

    def process(self, dest: TopDestination) -> Optional[MissingValueReport]:
        """Enrich and save one destination; None if it could not be resolved."""
        self._transition(dest, DestinationState.FETCHED)
        try:
            report = self.enrich_destination(dest)
        except ResolutionError as e:
            metrics.record_error("resolution_failed")
            logger.error(
                f"Failed to enrich destination: {e}",
                extra={"city": dest.city, "country": dest.country}
            )
            return None

        self._transition(
            dest,
            DestinationState.ENRICHED if report.is_complete else DestinationState.PARTIALLY_ENRICHED
        )
        self.save(dest)
        self._transition(dest, DestinationState.SAVED)
        return report

    def enrich_destination(self, dest: TopDestination) -> MissingValueReport:
        """
        Fill the destination's signal fields in place.

        Raises:
            ResolutionError: The destination's location could not be resolved
        """
        report = MissingValueReport(city=dest.city, country=dest.country)

        self._transition(dest, DestinationState.RESOLVING)
        mapping = self.resolver.resolve(dest.city, dest.country)

        self._transition(dest, DestinationState.SIGNAL_LOOKUP)
        if not mapping.place_id:
            report.missing_place_id = True
        dest.place_id = mapping.place_id

        try:
            dest.download_avg = self.speed_service.get(mapping).download_speed_mbps
        except SignalLookupError as e:
            report.missing_internet_speed = self._missing(dest, e)

        try:
            dest.safety_score = self.lookup_safety(mapping)
        except SignalLookupError as e:
            report.missing_safety_score = self._missing(dest, e)

        try:
            dest.cost_of_living_score = self.lookup_cost_of_living(mapping)
        except SignalLookupError as e:
            report.missing_cost_of_living = self._missing(dest, e)

        if not dest.photos:
            try:
                self.fill_photos(dest)
            except SignalLookupError as e:
                report.missing_photos = self._missing(dest, e)

        return report

    # -- signal lookups ---------------------------------------------------------

    def lookup_safety(self, mapping: LocationMapping) -> int:
        """City safety score, falling back to the country score when the city has none."""
        for ref in (mapping.city_safety_ref, mapping.country_safety_ref):
            if not ref:
                continue
            data = self.store.get(ref)
            if data is None:
                continue
            try:
                return SafetyScore.model_validate(data).score
            except ValidationError as e:
                raise SignalLookupError("safety", f"malformed safety document {ref}: {e}") from e
        raise SignalLookupError("safety", f"no safety score for {mapping.id}")

    def lookup_cost_of_living(self, mapping: LocationMapping) -> float:
        ref = mapping.cost_of_living_analytics_ref
        if not ref:
            raise SignalLookupError("cost_of_living", f"mapping {mapping.id} has no analytics reference")
        data = self.store.get(ref)
        if data is None:
            raise SignalLookupError("cost_of_living", f"analytics document {ref} does not exist")
        try:
            overall = CostOfLivingAnalytics.model_validate(data).overall
        except ValidationError as e:
            raise SignalLookupError("cost_of_living", f"malformed analytics document {ref}: {e}") from e
        if overall is None:
            raise SignalLookupError("cost_of_living", f"analytics document {ref} has no overall score")
        return overall

    def fill_photos(self, dest: TopDestination) -> None:
        try:
            photos = self.photo_client.search_photos(f"{dest.city} {dest.country}")
        except PhotoProviderError as e:
            raise SignalLookupError("photos", str(e)) from e
        dest.photos = photos
        if not dest.photo_uri_1:
            dest.photo_uri_1 = photos[0]
        if not dest.photo_uri_2:
            dest.photo_uri_2 = photos[1]

    # -- persistence ------------------------------------------------------------

    def save(self, dest: TopDestination) -> None:
        op = WriteOp.set(doc_path(TOP_DESTINATIONS, dest.id), dest.to_document())
        self.writer.commit_all([op]).raise_for_error()

    # -- helpers ----------------------------------------------------------------

    @staticmethod
    def _missing(dest: TopDestination, error: SignalLookupError) -> bool:
        metrics.increment(f"missing_{error.signal}")
        logger.error(
            f"Signal lookup failed: {error}",
            extra={"city": dest.city, "country": dest.country, "signal": error.signal}
        )
        return True

    @staticmethod
    def _transition(dest: TopDestination, state: DestinationState) -> None:
        logger.debug(
            f"{dest.city}, {dest.country} -> {state.value}",
            extra={"destination_id": dest.id, "state": state.value}
        )
