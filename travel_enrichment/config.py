"""
Configuration for the enrichment pipeline.

- Settings: provider keys and runtime knobs read from the environment
  (a local .env file is honoured via python-dotenv).
- RankingConfig: immutable country exclusion/cap tables injected into
  the ranking combiner.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv

from travel_enrichment.logging_config import get_logger

logger = get_logger("config")


# ============================================================================
# Collection names
# ============================================================================

LOCATION_MAPPINGS = "location-mappings"
CITY_SAFETY = "city-safety"
COUNTRY_SAFETY = "country-safety"
INTERNET_SPEED_CACHE = "internet-speed-cache"
COST_OF_LIVING = "cost-of-living"
COST_OF_LIVING_ANALYTICS = "cost-of-living-analytics"
TOP_DESTINATIONS = "top-destinations"


# ============================================================================
# Environment settings
# ============================================================================

@dataclass(frozen=True)
class Settings:
    google_maps_api_key: str = ""
    pexels_api_key: str = ""
    firebase_project_id: str = ""
    google_application_credentials: Optional[str] = None
    bigquery_project_id: str = ""
    bulk_write_group_size: int = 500
    bulk_write_max_attempts: int = 3
    speed_query_timeout_seconds: float = 120.0
    top_destinations_offset: int = 0
    top_destinations_limit: int = 100
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_maps_api_key = os.getenv("GOOGLE_MAPS_API_KEY", "")
    pexels_api_key = os.getenv("PEXELS_API_KEY", "")
    firebase_project_id = os.getenv("FIREBASE_PROJECT_ID", "")
    credentials_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None

    if not google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not configured; place search will fail.")
    if not pexels_api_key:
        logger.warning("PEXELS_API_KEY is not configured; photo lookups will be reported missing.")
    if not firebase_project_id:
        logger.warning("FIREBASE_PROJECT_ID is not set; falling back to the credentials' project.")

    return Settings(
        google_maps_api_key=google_maps_api_key,
        pexels_api_key=pexels_api_key,
        firebase_project_id=firebase_project_id,
        google_application_credentials=credentials_path,
        bigquery_project_id=os.getenv("BIGQUERY_PROJECT_ID", "") or firebase_project_id,
        bulk_write_group_size=int(os.getenv("BULK_WRITE_GROUP_SIZE", "500")),
        bulk_write_max_attempts=int(os.getenv("BULK_WRITE_MAX_ATTEMPTS", "3")),
        speed_query_timeout_seconds=float(os.getenv("SPEED_QUERY_TIMEOUT_SECONDS", "120")),
        top_destinations_offset=int(os.getenv("TOP_DESTINATIONS_OFFSET", "0")),
        top_destinations_limit=int(os.getenv("TOP_DESTINATIONS_LIMIT", "100")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


# ============================================================================
# Ranking configuration
# ============================================================================

def _frozen_mapping(values: Mapping[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True)
class RankingConfig:
    """
    Country exclusion and cap tables for the ranking combiner.

    Country keys are normalized slugs (e.g. "unitedstates").
    """

    excluded_countries: frozenset = frozenset()
    country_caps: Mapping[str, int] = field(default_factory=lambda: _frozen_mapping({}))
    default_cap: int = 3
    input_size: int = 200

    def __post_init__(self):
        # Accept plain sets/dicts from callers but store immutable copies
        object.__setattr__(self, "excluded_countries", frozenset(self.excluded_countries))
        object.__setattr__(self, "country_caps", _frozen_mapping(self.country_caps))

    def is_excluded(self, country: str) -> bool:
        return country in self.excluded_countries

    def cap_for(self, country: str) -> int:
        """Maximum number of ranked entries allowed for a country."""
        return self.country_caps.get(country, self.default_cap)


DEFAULT_RANKING_CONFIG = RankingConfig(
    excluded_countries=frozenset({
        "russia", "belarus", "northkorea", "iran", "syria", "afghanistan",
    }),
    country_caps={
        "unitedstates": 10,
        "india": 10,
        "china": 8,
        "brazil": 5,
        "mexico": 5,
    },
    default_cap=3,
    input_size=200,
)
