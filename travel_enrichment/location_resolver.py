"""
Location resolution: (city, country) -> canonical LocationMapping.

Resolution order:
1. Direct lookup by "<city>-<country>" document id.
2. Equality query on (city, country); among several matches the first
   one carrying a state/province wins, otherwise the first one.
3. Place search; the first candidate becomes a new mapping.

Existing mappings are always refreshed from place search, since stored
candidate data may be incomplete. A refresh that yields a different
canonical id moves the document (delete + set in one atomic group).
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from travel_enrichment.api_clients import PlaceCandidate
from travel_enrichment.bulk_writer import rename_unit
from travel_enrichment.config import (
    CITY_SAFETY,
    COST_OF_LIVING,
    COST_OF_LIVING_ANALYTICS,
    COUNTRY_SAFETY,
    INTERNET_SPEED_CACHE,
    LOCATION_MAPPINGS,
)
from travel_enrichment.document_store import WriteOp, doc_path
from travel_enrichment.errors import PlaceSearchError, ResolutionError
from travel_enrichment.logging_config import get_logger, metrics
from travel_enrichment.models import LocationMapping
from travel_enrichment.slugs import (
    construct_standard_name,
    location_doc_id,
    normalize_and_format,
    unique_non_empty,
)

logger = get_logger("resolver")

ADMINISTRATIVE_AREA = "administrative_area_level_1"


# ============================================================================
# Helpers
# ============================================================================

def extract_state_or_province(candidate: PlaceCandidate) -> str:
    """
    State/province of a candidate: the second-to-last comma-separated
    segment of its formatted address, only for administrative areas
    with at least three address segments.
    """
    if ADMINISTRATIVE_AREA not in candidate.types:
        return ""
    parts = candidate.formatted_address.split(",")
    if len(parts) >= 3:
        return parts[-2].strip()
    return ""


def attach_refs(mapping: LocationMapping) -> LocationMapping:
    """Point a mapping at its signal documents."""
    city_country = location_doc_id(mapping.city, mapping.country)
    if mapping.city:
        mapping.city_safety_ref = doc_path(CITY_SAFETY, city_country)
    mapping.country_safety_ref = doc_path(COUNTRY_SAFETY, normalize_and_format(mapping.country))
    mapping.internet_speed_ref = doc_path(INTERNET_SPEED_CACHE, mapping.standard_name)
    mapping.cost_of_living_ref = doc_path(COST_OF_LIVING, city_country)
    mapping.cost_of_living_analytics_ref = doc_path(COST_OF_LIVING_ANALYTICS, city_country)
    return mapping


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Resolver
# ============================================================================

class LocationResolver:
    """Finds, refreshes or creates canonical location mappings."""

    def __init__(
        self,
        store,
        writer,
        place_search,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.writer = writer
        self.place_search = place_search
        self._clock = clock

    def resolve(self, city: str, country: str) -> LocationMapping:
        """
        Resolve a city/country pair to its canonical mapping.

        Raises:
            ResolutionError: No stored mapping and place search failed or found nothing
            PersistenceError: Store read or write failed
        """
        found = self._lookup_by_id(city, country)
        if found is None:
            found = self._best_candidate(city, country)

        if found is None:
            mapping = self._create(city, country)
            self._save(mapping)
            metrics.increment("mappings_created")
            logger.info(
                f"Created location mapping {mapping.id}",
                extra={"city": city, "country": country, "mapping_id": mapping.id}
            )
            return mapping

        stored_id, mapping = found
        self._refresh(mapping)
        mapping.count += 1
        mapping.last_requested = self._clock()
        self._save(mapping, previous_id=stored_id)
        metrics.increment("mappings_resolved")
        logger.debug(
            f"Resolved location mapping {mapping.id}",
            extra={"city": city, "country": country, "mapping_id": mapping.id}
        )
        return mapping

    # -- lookups ------------------------------------------------------------

    def _lookup_by_id(self, city: str, country: str) -> Optional[Tuple[str, LocationMapping]]:
        doc_id = location_doc_id(city, country)
        data = self.store.get(doc_path(LOCATION_MAPPINGS, doc_id))
        if data is None:
            return None
        try:
            mapping = LocationMapping.model_validate(data)
        except ValidationError as e:
            raise ResolutionError(city, country, f"stored mapping {doc_id} is malformed: {e}") from e
        mapping.id = mapping.id or doc_id
        return doc_id, mapping

    def _best_candidate(self, city: str, country: str) -> Optional[Tuple[str, LocationMapping]]:
        docs = self.store.query(
            LOCATION_MAPPINGS,
            filters=[("city", "==", city), ("country", "==", country)],
        )
        candidates: List[Tuple[str, LocationMapping]] = []
        for doc_id, data in docs:
            try:
                mapping = LocationMapping.model_validate(data)
            except ValidationError as e:
                logger.error(
                    f"Failed to parse location mapping {doc_id}: {e}",
                    extra={"doc_id": doc_id}
                )
                continue
            mapping.id = mapping.id or doc_id
            candidates.append((doc_id, mapping))

        if not candidates:
            return None
        for candidate in candidates:
            if candidate[1].state_or_province:
                return candidate
        return candidates[0]

    # -- place search ---------------------------------------------------------

    def _search(self, city: str, country: str) -> PlaceCandidate:
        candidates = self.place_search.find_place(city, country)
        if not candidates:
            raise PlaceSearchError(f"No places found for {city}, {country}")
        return candidates[0]

    def _refresh(self, mapping: LocationMapping) -> None:
        """Overwrite place data from a fresh search; keep the mapping as-is on failure."""
        try:
            candidate = self._search(mapping.city, mapping.country)
        except PlaceSearchError as e:
            metrics.record_error("mapping_refresh_failed")
            logger.warning(
                f"Could not refresh mapping {mapping.id}: {e}",
                extra={"mapping_id": mapping.id}
            )
            return

        state = extract_state_or_province(candidate)
        standard_name = construct_standard_name("", mapping.city, state, mapping.country)
        mapping.id = standard_name
        mapping.standard_name = standard_name
        if state:
            mapping.state_or_province = state
        mapping.latitude = candidate.latitude
        mapping.longitude = candidate.longitude
        mapping.place_id = candidate.place_id
        mapping.types = list(candidate.types)
        mapping.aliases = unique_non_empty(
            candidate.name,
            candidate.formatted_address,
            f"{mapping.city}, {mapping.country}",
        )
        attach_refs(mapping)

    def _create(self, city: str, country: str) -> LocationMapping:
        try:
            candidate = self._search(city, country)
        except PlaceSearchError as e:
            metrics.record_error("resolution_failed")
            raise ResolutionError(city, country, str(e)) from e

        state = extract_state_or_province(candidate)
        standard_name = construct_standard_name("", city, state, country)
        mapping = LocationMapping(
            id=standard_name,
            standard_name=standard_name,
            display_name=candidate.name,
            formatted_address=candidate.formatted_address,
            city=city,
            country=country,
            state_or_province=state or None,
            latitude=candidate.latitude,
            longitude=candidate.longitude,
            place_id=candidate.place_id,
            types=list(candidate.types),
            aliases=unique_non_empty(candidate.name, candidate.formatted_address),
            count=1,
            last_requested=self._clock(),
        )
        return attach_refs(mapping)

    # -- persistence ----------------------------------------------------------

    def _save(self, mapping: LocationMapping, previous_id: Optional[str] = None) -> None:
        new_path = doc_path(LOCATION_MAPPINGS, mapping.id)
        data = mapping.to_document()
        if previous_id and previous_id != mapping.id:
            logger.info(
                f"Moving location mapping {previous_id} -> {mapping.id}",
                extra={"old_id": previous_id, "mapping_id": mapping.id}
            )
            unit = rename_unit(doc_path(LOCATION_MAPPINGS, previous_id), new_path, data)
        else:
            unit = WriteOp.set(new_path, data)
        self.writer.commit_all([unit]).raise_for_error()
