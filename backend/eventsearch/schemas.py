from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(ApiModel, Generic[T]):
    success: bool = True
    data: T


class ErrorDetail(ApiModel):
    code: str
    message: str
    details: Any | None = None


class ErrorResponse(ApiModel):
    success: bool = False
    error: ErrorDetail


class LocationInput(ApiModel):
    city: str | None = None
    area: str | None = None
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    radius: float | None = None


class BudgetInput(ApiModel):
    min: float | None = None
    max: float | None = None


class SearchRequest(ApiModel):
    query: str | None = None
    service_id: str | None = None
    service_type: str | None = None
    location: LocationInput | None = None
    budget: BudgetInput | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    verified: bool | None = None
    rating: float | None = None
    sort: str = "relevance"
    page: int = 1
    limit: int = 20


class UnifiedSearchRequest(SearchRequest):
    area_id: int | None = None
    group_by_tier: bool = False


class GeoPoint(ApiModel):
    type: Literal["Point"] = "Point"
    coordinates: list[float]


class Pricing(ApiModel):
    min: float
    max: float
    average: float | None = None
    currency: str = "INR"
    unit: str = "per_event"


class VendorResult(ApiModel):
    id: int
    vendor_id: str
    name: str
    business_name: str | None = None
    description: str | None = None
    service_type: str
    city: str
    area: str | None = None
    address: str | None = None
    location: GeoPoint
    pricing: Pricing
    rating: float
    review_count: int
    verified: bool
    is_featured: bool
    response_time: str
    popularity_score: float
    search_keywords: list[str] = Field(default_factory=list)
    filters: dict[str, list[str]] = Field(default_factory=dict)
    featured_image: str | None = None
    distance: float | None = None
    distance_unit: str | None = None
    distance_label: str | None = None
    match_tier: str | None = None
    score: float | None = None


class SearchPage(ApiModel):
    results: list[VendorResult]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    search_criteria: dict[str, Any] = Field(default_factory=dict)


class TierGroup(ApiModel):
    tier: str
    title: str
    priority: int
    vendors: list[VendorResult]


class SearchLocation(ApiModel):
    city: str | None = None
    area: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius: float
    source: str


class UnifiedSearchPage(SearchPage):
    tier_breakdown: dict[str, int]
    search_location: SearchLocation
    applied_filters: dict[str, Any]
    groups: list[TierGroup] | None = None
    timestamp: datetime


class SuggestionItem(ApiModel):
    type: str = "service"
    id: str
    taxonomy_id: str
    label: str
    icon: str | None = None
    score: int = 0
    matched_keyword: str | None = None
    parent_id: str | None = None


class TaxonomyMatchView(ApiModel):
    type: str
    taxonomy_id: str
    name: str
    icon: str | None = None
    score: int
    matched_keyword: str | None = None
    parent_id: str | None = None


class FilterContextRequest(ApiModel):
    query: str = ""
    category: str = ""
    event_type: str = ""
    location: LocationInput | None = None


class FilterSchemaView(ApiModel):
    universal: list[dict[str, Any]]
    specific: list[dict[str, Any]]
    hierarchy: dict[str, Any] | None = None
    detected_service: str | None = None


class ValidateFiltersRequest(FilterContextRequest):
    service_id: str | None = None
    applied: dict[str, Any] = Field(default_factory=dict)


class FilterErrorView(ApiModel):
    filter_id: str
    message: str


class FilterValidationView(ApiModel):
    valid: bool
    errors: list[FilterErrorView]
    validated: dict[str, Any]


class DetectIntentRequest(ApiModel):
    query: str = ""


class DetectIntentView(ApiModel):
    service_id: str | None = None
    matches: list[TaxonomyMatchView] = Field(default_factory=list)


class CityView(ApiModel):
    id: int
    osm_id: int | None = None
    name: str
    state: str | None = None
    place_type: str
    lat: float
    lon: float
    population: int | None = None
    area_count: int = 0
    distance: float | None = None


class AreaView(ApiModel):
    id: int
    osm_id: int | None = None
    city_id: int
    city_name: str
    name: str
    place_type: str
    lat: float
    lon: float
    distance: float | None = None


class PlaceName(ApiModel):
    name: str


class AreaPage(ApiModel):
    city: CityView
    areas: list[AreaView]
    total: int
    limit: int
    offset: int


class PlaceNameList(ApiModel):
    city: str | None = None
    source: str
    places: list[PlaceName]


class NearbyPlaces(ApiModel):
    cities: list[CityView]
    areas: list[AreaView]


class LocationStats(ApiModel):
    cities: int
    areas: int
    cities_with_areas: int
    cache: dict[str, Any] | None = None


class CatalogOption(ApiModel):
    value: str
    label: str
    count: int


class PriceRangeOption(ApiModel):
    label: str
    min: float
    max: float


class CatalogSuggestion(ApiModel):
    type: str
    value: str
    label: str
    priority: int
    vendor_id: str | None = None
    service_type: str | None = None
    city: str | None = None
    count: int | None = None


class FilterStats(ApiModel):
    verified: int
    total: int
    rating_breakdown: dict[str, int]


class HealthResponse(BaseModel):
    status: str
