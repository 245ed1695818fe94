"""
Provider clients: Google Places (place search), Pexels (photos) and
BigQuery M-Lab NDT tables (aggregate throughput).

Enhanced with:
- Retry logic with exponential backoff (tenacity)
- Circuit breaker per provider (pybreaker)
- Pydantic validation for responses
- Structured logging
- Rate limit handling

SDK and HTTP exceptions never leave this module: each client raises its
own error type (PlaceSearchError, PhotoProviderError, ThroughputQueryError)
with the underlying exception chained.
"""

import concurrent.futures
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import googlemaps
import requests
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigquery
from googlemaps.exceptions import ApiError, Timeout, TransportError
from pydantic import BaseModel, Field, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from travel_enrichment.circuit_breaker import CircuitBreakerError, get_circuit_breaker
from travel_enrichment.errors import PhotoProviderError, PlaceSearchError, ThroughputQueryError
from travel_enrichment.logging_config import get_logger, log_api_call, metrics
from travel_enrichment.models import LocationMapping

logger = get_logger("api_client")


# ============================================================================
# Retry Configuration
# ============================================================================

def create_retry_decorator(api_name: str):
    """
    Create a retry decorator for HTTP calls.

    Args:
        api_name: Name of API for logging

    Returns:
        Retry decorator
    """
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((
            requests.ConnectionError,
            requests.Timeout,
        )),
        before_sleep=before_sleep_log(logger, log_level=20),  # INFO level
        reraise=True
    )


# ============================================================================
# Rate Limit Handler
# ============================================================================

class RateLimitHandler:
    """
    Tracks 429 responses and holds further requests until the
    provider's backoff window has passed.
    """

    def __init__(self, api_name: str):
        self.api_name = api_name
        self.backoff_until: Optional[datetime] = None
        self.consecutive_429s = 0

    def check_rate_limit(self) -> bool:
        """
        Returns:
            True if request can proceed, False if still backing off
        """
        if self.backoff_until and datetime.now() < self.backoff_until:
            remaining = (self.backoff_until - datetime.now()).total_seconds()
            logger.warning(
                f"Rate limit backoff active for {self.api_name}",
                extra={"backoff_remaining_seconds": round(remaining, 1)}
            )
            return False
        return True

    def handle_429(self, retry_after: Optional[int] = None) -> None:
        """
        Handle 429 rate limit response.

        Args:
            retry_after: Retry-After header value in seconds
        """
        self.consecutive_429s += 1
        # Exponential backoff: 60, 120, 240... capped at 30 minutes
        backoff_seconds = retry_after or min(60 * (2 ** (self.consecutive_429s - 1)), 1800)
        self.backoff_until = datetime.now() + timedelta(seconds=backoff_seconds)

        logger.warning(
            f"Rate limit hit for {self.api_name}",
            extra={
                "consecutive_429s": self.consecutive_429s,
                "backoff_seconds": backoff_seconds,
            }
        )
        metrics.record_error("rate_limit_429")

    def reset(self) -> None:
        """Reset rate limit state after successful request."""
        self.consecutive_429s = 0
        self.backoff_until = None


# ============================================================================
# Google Places (Find Place from Text)
# ============================================================================

class PlaceLocation(BaseModel):
    lat: float
    lng: float


class PlaceGeometry(BaseModel):
    location: PlaceLocation


class PlaceCandidate(BaseModel):
    """Validated Find Place candidate."""

    place_id: str
    name: str = ""
    formatted_address: str = ""
    geometry: PlaceGeometry
    types: List[str] = Field(default_factory=list)

    @property
    def latitude(self) -> float:
        return self.geometry.location.lat

    @property
    def longitude(self) -> float:
        return self.geometry.location.lng


class PlaceSearchClient:
    """Client for Google Places text search."""

    FIELDS = ["place_id", "name", "formatted_address", "geometry", "types"]

    def __init__(self, api_key: str = "", client: Optional[googlemaps.Client] = None):
        self.api_key = api_key
        self._client = client or (googlemaps.Client(key=api_key) if api_key else None)
        self.circuit_breaker = get_circuit_breaker("places")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @log_api_call("places")
    def find_place(self, city: str, country: str) -> List[PlaceCandidate]:
        """
        Search for "<city>, <country>" and return ranked candidates.

        Raises:
            PlaceSearchError: On provider failure, open circuit or malformed response
        """
        if not self.is_configured:
            raise PlaceSearchError("GOOGLE_MAPS_API_KEY is not configured")

        query = f"{city}, {country}"
        try:
            response = self.circuit_breaker.call(
                self._client.find_place,
                input=query,
                input_type="textquery",
                fields=self.FIELDS,
            )
        except CircuitBreakerError as e:
            raise PlaceSearchError(f"Places circuit breaker is open: {e}") from e
        except (ApiError, TransportError, Timeout) as e:
            raise PlaceSearchError(f"Place search for {query!r} failed: {e}") from e

        try:
            candidates = [PlaceCandidate.model_validate(c) for c in response.get("candidates", [])]
        except ValidationError as e:
            raise PlaceSearchError(f"Malformed place candidate for {query!r}: {e}") from e

        logger.debug(
            f"Place search returned {len(candidates)} candidates",
            extra={"query": query, "candidate_count": len(candidates)}
        )
        return candidates


# ============================================================================
# Pexels Photos
# ============================================================================

class PexelsPhotoSource(BaseModel):
    medium: str


class PexelsPhoto(BaseModel):
    src: PexelsPhotoSource


class PexelsSearchResponse(BaseModel):
    photos: List[PexelsPhoto] = Field(default_factory=list)


class PexelsClient:
    """Client for the Pexels photo search API."""

    BASE_URL = "https://api.pexels.com/v1/search"
    MIN_PHOTOS = 2

    def __init__(self, api_key: str = "", session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.circuit_breaker = get_circuit_breaker("pexels")
        self.rate_limiter = RateLimitHandler("pexels")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _make_request(self, params: Dict[str, Any], timeout: int = 15) -> Dict[str, Any]:
        """
        Make HTTP request with error handling.

        Raises:
            PhotoProviderError: On rate limit or non-2xx response
            requests.RequestException: On transport failure (retried by caller)
        """
        if not self.rate_limiter.check_rate_limit():
            raise PhotoProviderError("Pexels rate limit backoff active")

        response = self.session.get(
            self.BASE_URL,
            params=params,
            headers={"Authorization": self.api_key},
            timeout=timeout,
        )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            self.rate_limiter.handle_429(int(retry_after) if retry_after else None)
            raise PhotoProviderError("Pexels rate limit exceeded")

        response.raise_for_status()
        self.rate_limiter.reset()
        return response.json()

    @log_api_call("pexels")
    def search_photos(self, query: str, per_page: int = 15) -> List[str]:
        """
        Medium-size photo URLs for a text query, best match first.

        Raises:
            PhotoProviderError: On failure or when fewer than two photos are found
        """
        if not self.is_configured:
            raise PhotoProviderError("PEXELS_API_KEY is not configured")

        params = {"query": query, "per_page": per_page}

        @create_retry_decorator("pexels")
        def fetch():
            return self.circuit_breaker.call(self._make_request, params)

        try:
            data = fetch()
        except CircuitBreakerError as e:
            raise PhotoProviderError(f"Pexels circuit breaker is open: {e}") from e
        except requests.RequestException as e:
            raise PhotoProviderError(f"Pexels request for {query!r} failed: {e}") from e

        try:
            parsed = PexelsSearchResponse.model_validate(data)
        except ValidationError as e:
            raise PhotoProviderError(f"Malformed Pexels response for {query!r}: {e}") from e

        urls = [photo.src.medium for photo in parsed.photos if photo.src.medium]
        if len(urls) < self.MIN_PHOTOS:
            raise PhotoProviderError(
                f"Pexels returned {len(urls)} photos for {query!r}, need at least {self.MIN_PHOTOS}"
            )
        return urls


# ============================================================================
# BigQuery M-Lab throughput
# ============================================================================

DOWNLOAD_TABLE = "unified_downloads"
UPLOAD_TABLE = "unified_uploads"

# Half-width of the measurement window around a city, in degrees latitude
BOUNDING_BOX_OFFSET = 0.045

_COUNTRY_QUERY = """
SELECT AVG(a.MeanThroughputMbps) AS avg
FROM `measurement-lab.ndt.{table}`
WHERE LOWER(client.Geo.CountryName) = LOWER(@country_name)
AND date > DATE_SUB(CURRENT_DATE(), INTERVAL 2 DAY)
LIMIT 3000
"""

_BOUNDING_BOX_QUERY = """
SELECT AVG(a.MeanThroughputMbps) AS avg
FROM `measurement-lab.ndt.{table}`
WHERE (client.Geo.Latitude >= @lat_min AND client.Geo.Latitude <= @lat_max)
AND (client.Geo.Longitude >= @lng_min AND client.Geo.Longitude <= @lng_max)
AND date > DATE_SUB(CURRENT_DATE(), INTERVAL 7 DAY)
LIMIT 3000
"""


def bounding_box(latitude: float, longitude: float) -> Tuple[float, float, float, float]:
    """
    Square-ish window around a point: a fixed latitude offset and a
    longitude offset scaled by cos(latitude).

    Returns:
        (lat_min, lat_max, lng_min, lng_max)
    """
    lng_offset = BOUNDING_BOX_OFFSET * math.cos(math.radians(latitude))
    return (
        latitude - BOUNDING_BOX_OFFSET,
        latitude + BOUNDING_BOX_OFFSET,
        longitude - lng_offset,
        longitude + lng_offset,
    )


def build_throughput_query(
    table: str,
    mapping: LocationMapping
) -> Tuple[str, List[bigquery.ScalarQueryParameter]]:
    """
    Build the average-throughput SQL and its parameters for a location.

    Country-level mappings filter by country name over the last 2 days;
    everything else uses a bounding box over the last 7 days.
    """
    if mapping.is_country:
        return _COUNTRY_QUERY.format(table=table), [
            bigquery.ScalarQueryParameter("country_name", "STRING", mapping.formatted_address),
        ]

    lat_min, lat_max, lng_min, lng_max = bounding_box(mapping.latitude, mapping.longitude)
    return _BOUNDING_BOX_QUERY.format(table=table), [
        bigquery.ScalarQueryParameter("lat_min", "FLOAT64", lat_min),
        bigquery.ScalarQueryParameter("lat_max", "FLOAT64", lat_max),
        bigquery.ScalarQueryParameter("lng_min", "FLOAT64", lng_min),
        bigquery.ScalarQueryParameter("lng_max", "FLOAT64", lng_max),
    ]


class ThroughputClient:
    """Runs aggregate throughput queries against the public M-Lab dataset."""

    def __init__(self, project: str = "", client: Optional[bigquery.Client] = None):
        self.project = project
        self._client = client
        self.circuit_breaker = get_circuit_breaker("bigquery")

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.project or None)
        return self._client

    def _run(self, sql: str, params: List[bigquery.ScalarQueryParameter], timeout: float):
        job_config = bigquery.QueryJobConfig(query_parameters=params)
        job = self.client.query(sql, job_config=job_config)
        return list(job.result(timeout=timeout))

    @log_api_call("bigquery")
    def average_throughput(
        self,
        table: str,
        mapping: LocationMapping,
        timeout: float = 120.0
    ) -> float:
        """
        Average MeanThroughputMbps for a location.

        Args:
            table: DOWNLOAD_TABLE or UPLOAD_TABLE
            mapping: Location whose coordinates/country bound the query
            timeout: Seconds to wait for the query result

        Raises:
            ThroughputQueryError: On query, credential or transport failure, or
                when no measurements match
        """
        sql, params = build_throughput_query(table, mapping)
        try:
            rows = self.circuit_breaker.call(self._run, sql, params, timeout)
        except CircuitBreakerError as e:
            raise ThroughputQueryError(f"BigQuery circuit breaker is open: {e}") from e
        except (GoogleAPIError, GoogleAuthError, requests.RequestException, concurrent.futures.TimeoutError) as e:
            # Credential and transport failures degrade the signal like API errors
            raise ThroughputQueryError(f"{table} query for {mapping.id} failed: {e}") from e

        if not rows or rows[0]["avg"] is None:
            raise ThroughputQueryError(f"No {table} measurements for {mapping.id}")
        return float(rows[0]["avg"])
