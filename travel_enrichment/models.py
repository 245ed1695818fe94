"""
Document models for the enrichment pipeline.

Pydantic models mirror the stored documents; field aliases are the
camelCase keys used in the document store. References between documents
are held as "collection/documentId" path strings.
"""

from dataclasses import dataclass
from datetime import datetime
from operator import attrgetter
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StoredModel(BaseModel):
    """Base for documents read from / written to the store."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> Dict:
        """Serialize with store field names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Cost of Living
# ============================================================================

class CostOfLivingRecord(StoredModel):
    """One priced-items snapshot for a city. Zero means "not reported"."""

    city: str
    country: str

    # Restaurants
    meal_inexpensive_restaurant: float = Field(0.0, alias="mealInexpensiveRestaurant")
    meal_for_2_mid_range: float = Field(0.0, alias="mealFor2MidRange")
    combo_meal_mcdonalds: float = Field(0.0, alias="comboMealMcdonalds")
    domestic_beer_restaurant: float = Field(0.0, alias="domesticBeerRestaurant")
    imported_beer_restaurant: float = Field(0.0, alias="importedBeerRestaurant")
    cappuccino_restaurant: float = Field(0.0, alias="cappuccinoRestaurant")
    soda_restaurant: float = Field(0.0, alias="sodaRestaurant")
    water_restaurant: float = Field(0.0, alias="waterRestaurant")

    # Markets
    milk_1l: float = Field(0.0, alias="milk1L")
    bread_loaf: float = Field(0.0, alias="breadLoaf")
    rice_1kg: float = Field(0.0, alias="rice1Kg")
    eggs_12_pack: float = Field(0.0, alias="eggs12Pack")
    local_cheese_1kg: float = Field(0.0, alias="localCheese1Kg")
    chicken_fillet_1kg: float = Field(0.0, alias="chickenFillet1Kg")
    beef_round_1kg: float = Field(0.0, alias="beefRound1Kg")
    apples_1kg: float = Field(0.0, alias="apples1Kg")
    banana_1kg: float = Field(0.0, alias="banana1Kg")
    oranges_1kg: float = Field(0.0, alias="oranges1Kg")
    tomato_1kg: float = Field(0.0, alias="tomato1Kg")
    potato_1kg: float = Field(0.0, alias="potato1Kg")
    onion_1kg: float = Field(0.0, alias="onion1Kg")
    lettuce_head: float = Field(0.0, alias="lettuceHead")
    water_1_5l_market: float = Field(0.0, alias="water1_5LMarket")
    wine_mid_range: float = Field(0.0, alias="wineMidRange")
    domestic_beer_market: float = Field(0.0, alias="domesticBeerMarket")
    imported_beer_market: float = Field(0.0, alias="importedBeerMarket")
    cigarettes_pack: float = Field(0.0, alias="cigarettesPack")

    # Transportation
    ticket_one_way: float = Field(0.0, alias="ticketOneWay")
    monthly_pass: float = Field(0.0, alias="monthlyPass")
    taxi_start: float = Field(0.0, alias="taxiStart")
    taxi_1km: float = Field(0.0, alias="taxi1Km")
    taxi_waiting_1_hour: float = Field(0.0, alias="taxiWaiting1Hour")
    gasoline_1l: float = Field(0.0, alias="gasoline1L")
    vw_golf_new: float = Field(0.0, alias="vwGolfNew")
    toyota_corolla_new: float = Field(0.0, alias="toyotaCorollaNew")

    # Utilities and leisure
    utilities_85sqm_apartment: float = Field(0.0, alias="utilities85sqmApartment")
    mobile_tariff_1min: float = Field(0.0, alias="mobileTariff1Min")
    internet_unlimited: float = Field(0.0, alias="internetUnlimited")
    fitness_club_monthly: float = Field(0.0, alias="fitnessClubMonthly")
    tennis_court_hourly: float = Field(0.0, alias="tennisCourtHourly")
    cinema_ticket: float = Field(0.0, alias="cinemaTicket")

    # Childcare and clothing
    preschool_monthly: float = Field(0.0, alias="preschoolMonthly")
    intl_primary_school_yearly: float = Field(0.0, alias="intlPrimarySchoolYearly")
    jeans: float = Field(0.0, alias="jeans")
    summer_dress: float = Field(0.0, alias="summerDress")
    nike_shoes: float = Field(0.0, alias="nikeShoes")
    leather_shoes: float = Field(0.0, alias="leatherShoes")

    # Housing and income
    apt_1bed_city_center: float = Field(0.0, alias="apt1BedCityCenter")
    apt_1bed_outside_center: float = Field(0.0, alias="apt1BedOutsideCenter")
    apt_3bed_city_center: float = Field(0.0, alias="apt3BedCityCenter")
    apt_3bed_outside_center: float = Field(0.0, alias="apt3BedOutsideCenter")
    price_per_sqm_city_center: float = Field(0.0, alias="pricePerSqmCityCenter")
    price_per_sqm_outside_center: float = Field(0.0, alias="pricePerSqmOutsideCenter")
    avg_net_salary: float = Field(0.0, alias="avgNetSalary")
    mortgage_rate: float = Field(0.0, alias="mortgageRate")

    data_quality: float = Field(0.0, alias="dataQuality")


# Metrics the analyzer scores, in output order
TRACKED_METRICS: Tuple[str, ...] = (
    "meal_inexpensive_restaurant",
    "meal_for_2_mid_range",
    "combo_meal_mcdonalds",
    "domestic_beer_restaurant",
    "imported_beer_restaurant",
    "cappuccino_restaurant",
    "soda_restaurant",
    "water_restaurant",
    "wine_mid_range",
    "domestic_beer_market",
    "imported_beer_market",
    "cigarettes_pack",
    "ticket_one_way",
    "monthly_pass",
    "taxi_start",
    "taxi_1km",
    "gasoline_1l",
    "utilities_85sqm_apartment",
    "mobile_tariff_1min",
    "internet_unlimited",
    "fitness_club_monthly",
    "apt_1bed_city_center",
    "apt_1bed_outside_center",
    "apt_3bed_city_center",
    "apt_3bed_outside_center",
    "price_per_sqm_city_center",
    "price_per_sqm_outside_center",
    "avg_net_salary",
)

# Income metrics are scored but left out of the overall cost score
NON_COST_METRICS = frozenset({"avgNetSalary"})

# (stored metric name, extractor) pairs, built once
METRIC_EXTRACTORS: List[Tuple[str, Callable[[CostOfLivingRecord], float]]] = [
    (CostOfLivingRecord.model_fields[name].alias, attrgetter(name))
    for name in TRACKED_METRICS
]


class MetricStats(StoredModel):
    """Distribution summary of one metric across all locations."""

    mean: float
    median: float
    mode: float
    standard_deviation: float = Field(alias="standardDeviation")


class CostOfLivingAnalytics(StoredModel):
    """Per-location percentile scores and metric statistics (sparse)."""

    city: str
    country: str
    scores: Dict[str, float] = Field(default_factory=dict)
    stats: Dict[str, MetricStats] = Field(default_factory=dict)

    @property
    def overall(self) -> Optional[float]:
        return self.scores.get("overall")


# ============================================================================
# Signals
# ============================================================================

class SafetyScore(StoredModel):
    city: str = ""
    country: str = ""
    score: int


class InternetSpeed(StoredModel):
    """Average measured throughput around a location."""

    location_name: str = Field("", alias="locationName")
    latitude: float = 0.0
    longitude: float = 0.0
    download_speed_mbps: float = Field(alias="downloadSpeed_mbps")
    upload_speed_mbps: float = Field(alias="uploadSpeed_mbps")
    types: List[str] = Field(default_factory=list)


# ============================================================================
# Locations and destinations
# ============================================================================

class LocationMapping(StoredModel):
    """Canonical identity of a place; signal documents hang off its refs."""

    # Keys written by other tools survive a read-modify-write
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = ""
    standard_name: str = Field("", alias="standardName")
    place_id: str = Field("", alias="placeId")
    display_name: str = Field("", alias="displayName")
    formatted_address: str = Field("", alias="formattedAddress")
    sublocality: Optional[str] = None
    city: str = ""
    country: str = ""
    state_or_province: Optional[str] = Field(None, alias="stateOrProvince")
    latitude: float = 0.0
    longitude: float = 0.0
    aliases: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)
    city_safety_ref: Optional[str] = Field(None, alias="citySafetyRef")
    country_safety_ref: Optional[str] = Field(None, alias="countrySafetyRef")
    internet_speed_ref: Optional[str] = Field(None, alias="internetSpeedRef")
    cost_of_living_ref: Optional[str] = Field(None, alias="costOfLivingRef")
    cost_of_living_analytics_ref: Optional[str] = Field(None, alias="costOfLivingAnalyticsRef")
    count: int = 0
    last_requested: Optional[datetime] = Field(None, alias="lastRequested")
    continent: Optional[str] = None
    continent_code: Optional[str] = Field(None, alias="continentCode")
    rank: Optional[int] = None
    photo_uri_1: Optional[str] = Field(None, alias="photoUri1")
    photo_uri_2: Optional[str] = Field(None, alias="photoUri2")
    address_components: Optional[List[Dict[str, Any]]] = Field(None, alias="addressComponents")

    @field_validator("aliases", "types", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []

    @property
    def is_country(self) -> bool:
        return "country" in self.types


class TopDestination(StoredModel):
    id: str = ""
    city: str
    country: str
    rank: int = 0
    place_id: str = Field("", alias="placeId")
    photo_uri_1: str = Field("", alias="photoUri1")
    photo_uri_2: str = Field("", alias="photoUri2")
    photos: List[str] = Field(default_factory=list)
    download_avg: float = Field(0.0, alias="downloadAvg")
    safety_score: int = Field(0, alias="safetyScore")
    cost_of_living_score: float = Field(0.0, alias="costOfLivingScore")

    @field_validator("photos", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


# ============================================================================
# Ephemeral results
# ============================================================================

@dataclass(frozen=True)
class CombinedRecord:
    """One ranked location produced by the ranking combiner."""

    id: str
    country: str
    safety_score: float
    inverted_cost_score: float
    average_score: float


@dataclass
class MissingValueReport:
    """Which signals could not be filled for one destination."""

    city: str
    country: str
    missing_place_id: bool = False
    missing_internet_speed: bool = False
    missing_safety_score: bool = False
    missing_cost_of_living: bool = False
    missing_photos: bool = False

    @property
    def is_complete(self) -> bool:
        return not any((
            self.missing_place_id,
            self.missing_internet_speed,
            self.missing_safety_score,
            self.missing_cost_of_living,
            self.missing_photos,
        ))
