from __future__ import annotations

import logging
import math
import unicodedata
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, Text, case, cast, false, func, literal_column, select
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..models import Vendor, VendorFilterValue, vendor_search_document
from ..schemas import GeoPoint, Pricing, SearchPage, SearchRequest, VendorResult
from ..telemetry import get_current_trace, instrument_stage, timed_stage
from .distance_service import (
    display_distance_km,
    format_distance,
    is_valid_coordinate,
    squared_distance_expression,
    within_radius_clause,
)

logger = logging.getLogger(__name__)

# Letters, combining marks and digits form terms; everything else separates them.
TERM_CATEGORIES = ("L", "M", "N")

# Weighted text fields; ts_rank weights below are {D, C, B, A} with the same 2:5:8:10 ratios.
TEXT_FIELD_WEIGHTS = (
    ("name", 10),
    ("business_name", 10),
    ("contact_person", 8),
    ("search_keywords", 5),
    ("description", 2),
)
TS_RANK_WEIGHTS = "'{0.2,0.5,0.8,1.0}'::float4[]"

SORT_ALIASES = {"price_low": "price-low", "price_high": "price-high", "nearest": "distance"}
SORT_OPTIONS = {"relevance", "rating", "price-low", "price-high", "distance", "reviews", "popularity", "response_time"}
RESPONSE_TIME_RANK = {"within_1hr": 0, "within_4hr": 1, "within_24hr": 2, "more_than_24hr": 3}

INDEX_CATEGORY_LOCATION_STATUS = "ix_vendors_category_location_status"
INDEX_LOCATION_CATEGORY_RATING = "ix_vendors_location_category_rating"
INDEX_STATUS_RATING = "ix_vendors_status_rating"


class SearchValidationError(ValueError):
    pass


@dataclass
class SearchParams:
    query: str | None = None
    service_type: str | None = None
    city: str | None = None
    area: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius_km: float | None = None
    budget_min: float | None = None
    budget_max: float | None = None
    filters: dict[str, list[str]] = field(default_factory=dict)
    verified: bool | None = None
    min_rating: float | None = None
    sort: str = "relevance"
    page: int = 1
    limit: int = 20

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def geo_active(self) -> bool:
        return self.has_coordinates and self.radius_km is not None

    @property
    def query_terms(self) -> list[str]:
        text = (self.query or "").lower()
        return "".join(char if unicodedata.category(char).startswith(TERM_CATEGORIES) else " " for char in text).split()

    def criteria(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "serviceType": self.service_type,
            "location": {
                "city": self.city,
                "area": self.area,
                "latitude": self.latitude,
                "longitude": self.longitude,
                "radius": self.radius_km,
            },
            "budget": {"min": self.budget_min, "max": self.budget_max},
            "filters": self.filters,
            "verified": self.verified,
            "rating": self.min_rating,
            "sort": self.sort,
            "indexHint": select_index_hint(self),
        }


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def _normalize_filter_values(raw: dict[str, Any]) -> dict[str, list[str]]:
    normalized: dict[str, list[str]] = {}
    for filter_id, value in raw.items():
        values = value if isinstance(value, list) else [value]
        cleaned = [
            ("true" if item else "false") if isinstance(item, bool) else str(item)
            for item in values
            if item is not None and item != ""
        ]
        if cleaned:
            normalized[filter_id] = cleaned
    return normalized


def normalize_search_params(request: SearchRequest, *, default_radius_km: float | None = None) -> SearchParams:
    """Clamp and validate a raw search request. Invalid coordinates raise ``SearchValidationError``."""
    location = request.location
    latitude = location.latitude if location else None
    longitude = location.longitude if location else None
    if (latitude is None) != (longitude is None):
        raise SearchValidationError("Both latitude and longitude are required for a location search")
    if latitude is not None and not is_valid_coordinate(latitude, longitude):
        raise SearchValidationError(f"Invalid coordinates: latitude={latitude}, longitude={longitude}")

    radius_km = location.radius if location and location.radius is not None else default_radius_km
    if radius_km is not None:
        radius_km = _clamp(float(radius_km), 1.0, settings.search_max_radius_km)

    budget_min = budget_max = None
    if request.budget is not None:
        budget_min = max(0.0, request.budget.min) if request.budget.min is not None else None
        budget_max = max(0.0, request.budget.max) if request.budget.max is not None else None
        if budget_min is not None and budget_max is not None and budget_min > budget_max:
            budget_min, budget_max = budget_max, budget_min

    sort = SORT_ALIASES.get(request.sort, request.sort)
    if sort not in SORT_OPTIONS:
        logger.info("search_unknown_sort sort=%r fallback=relevance", request.sort)
        sort = "relevance"

    service_type = _clean_text(request.service_type or request.service_id)
    return SearchParams(
        query=_clean_text(request.query),
        service_type=service_type.lower() if service_type else None,
        city=_clean_text(location.city) if location else None,
        area=_clean_text(location.area) if location else None,
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
        budget_min=budget_min,
        budget_max=budget_max,
        filters=_normalize_filter_values(request.filters),
        verified=request.verified,
        min_rating=_clamp(request.rating, 0.0, 5.0) if request.rating is not None else None,
        sort=sort,
        page=max(1, request.page),
        limit=int(_clamp(request.limit, 1, settings.max_page_size)),
    )


def select_index_hint(params: SearchParams) -> str | None:
    """Name of the compound index matching the most specific supplied filter set."""
    city = params.city if not params.geo_active else None
    if params.service_type and city and params.verified is not None:
        return INDEX_CATEGORY_LOCATION_STATUS
    if city and params.service_type:
        return INDEX_LOCATION_CATEGORY_RATING
    if params.verified is not None:
        return INDEX_STATUS_RATING
    if params.geo_active:
        return "ix_vendors_location"
    if params.query_terms:
        return "vendor_search_text_index"
    return None


class VendorQueryBuilder:
    def __init__(self, params: SearchParams, *, dialect_name: str) -> None:
        self.params = params
        self.dialect_name = dialect_name

    def text_search(self) -> tuple[ColumnElement[bool] | None, ColumnElement[Any] | None]:
        terms = self.params.query_terms
        if not terms:
            # punctuation or symbols only: nothing can match
            return (false(), None) if (self.params.query or "").strip() else (None, None)

        if self.dialect_name == "postgresql":
            document = vendor_search_document()
            ts_query = func.to_tsquery(literal_column("'english'::regconfig"), " | ".join(terms))
            return document.op("@@")(ts_query), func.ts_rank(literal_column(TS_RANK_WEIGHTS), document, ts_query)

        score_parts = []
        for term in terms:
            for field_name, weight in TEXT_FIELD_WEIGHTS:
                column = getattr(Vendor, field_name)
                if field_name == "search_keywords":
                    column = cast(column, Text)
                haystack = func.lower(func.coalesce(column, ""))
                score_parts.append(case((haystack.contains(term), weight), else_=0))
        score = sum(score_parts[1:], score_parts[0])
        return score > 0, score

    def attribute_conditions(self) -> list[ColumnElement[bool]]:
        params = self.params
        conditions: list[ColumnElement[bool]] = [Vendor.is_active.is_(True)]
        if params.service_type:
            conditions.append(Vendor.service_type.icontains(params.service_type, autoescape=True))
        if params.verified is not None:
            conditions.append(Vendor.verified.is_(params.verified))
        if params.min_rating is not None:
            conditions.append(Vendor.rating >= params.min_rating)
        for filter_id, values in params.filters.items():
            conditions.append(
                select(VendorFilterValue.id)
                .where(
                    VendorFilterValue.vendor_pk == Vendor.id,
                    VendorFilterValue.filter_id == filter_id,
                    VendorFilterValue.value.in_(values),
                )
                .exists()
            )
        return conditions

    def budget_conditions(self, flexibility_percent: float = 0.0) -> list[ColumnElement[bool]]:
        budget_min = self.params.budget_min
        budget_max = self.params.budget_max
        factor = flexibility_percent / 100.0
        if budget_min is not None:
            budget_min = budget_min * (1.0 - factor)
        if budget_max is not None:
            budget_max = budget_max * (1.0 + factor)

        # Any overlap between [pricing_min, pricing_max] and the requested range.
        conditions: list[ColumnElement[bool]] = []
        if budget_max is not None:
            conditions.append(Vendor.pricing_min <= budget_max)
        if budget_min is not None:
            conditions.append(Vendor.pricing_max >= budget_min)
        return conditions

    def location_conditions(self) -> list[ColumnElement[bool]]:
        params = self.params
        if params.geo_active:
            return [within_radius_clause(Vendor.lat, Vendor.lng, params.latitude, params.longitude, params.radius_km)]

        conditions: list[ColumnElement[bool]] = []
        if params.city:
            conditions.append(Vendor.city.icontains(params.city, autoescape=True))
        if params.area:
            conditions.append(Vendor.area.icontains(params.area, autoescape=True))
        return conditions

    def distance_expression(self) -> ColumnElement[float] | None:
        if not self.params.has_coordinates:
            return None
        return squared_distance_expression(Vendor.lat, Vendor.lng, self.params.latitude, self.params.longitude)

    def order_by(self, score: ColumnElement[Any] | None) -> list[ColumnElement[Any]]:
        sort = self.params.sort
        if sort == "relevance":
            ordering = [score.desc()] if score is not None else []
            ordering += [Vendor.is_featured.desc(), Vendor.rating.desc(), Vendor.popularity_score.desc()]
        elif sort == "rating":
            ordering = [Vendor.rating.desc(), Vendor.review_count.desc()]
        elif sort == "price-low":
            ordering = [Vendor.pricing_min.asc(), Vendor.rating.desc()]
        elif sort == "price-high":
            ordering = [Vendor.pricing_min.desc(), Vendor.rating.desc()]
        elif sort == "reviews":
            ordering = [Vendor.review_count.desc(), Vendor.rating.desc()]
        elif sort == "popularity":
            ordering = [Vendor.popularity_score.desc(), Vendor.rating.desc()]
        elif sort == "response_time":
            rank = case(RESPONSE_TIME_RANK, value=Vendor.response_time, else_=len(RESPONSE_TIME_RANK))
            ordering = [rank.asc(), Vendor.rating.desc()]
        else:
            distance = self.distance_expression()
            if distance is None:
                logger.debug("search_distance_sort_without_coordinates fallback=rating")
                ordering = [Vendor.rating.desc()]
            else:
                ordering = [distance.asc()]
        return [*ordering, Vendor.id.asc()]


def vendor_to_result(
    vendor: Vendor,
    *,
    origin: tuple[float, float] | None = None,
    match_tier: str | None = None,
    score: float | None = None,
) -> VendorResult:
    distance = None
    if origin is not None:
        distance = display_distance_km(origin[0], origin[1], vendor.lat, vendor.lng)

    return VendorResult(
        id=vendor.id,
        vendor_id=vendor.vendor_id,
        name=vendor.name,
        business_name=vendor.business_name,
        description=vendor.description,
        service_type=vendor.service_type,
        city=vendor.city,
        area=vendor.area,
        address=vendor.address,
        location=GeoPoint(coordinates=[vendor.lng, vendor.lat]),
        pricing=Pricing(
            min=vendor.pricing_min,
            max=vendor.pricing_max,
            average=vendor.pricing_average,
            currency=vendor.pricing_currency,
            unit=vendor.pricing_unit,
        ),
        rating=vendor.rating,
        review_count=vendor.review_count,
        verified=vendor.verified,
        is_featured=vendor.is_featured,
        response_time=vendor.response_time,
        popularity_score=vendor.popularity_score,
        search_keywords=list(vendor.search_keywords or []),
        filters=vendor.filters,
        featured_image=vendor.featured_image,
        distance=distance,
        distance_unit="km" if distance is not None else None,
        distance_label=format_distance(distance) if distance is not None else None,
        match_tier=match_tier,
        score=round(float(score), 4) if score is not None else None,
    )


def page_metadata(total: int, page: int, limit: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


class VendorSearchService:
    @staticmethod
    def _record_trace_query(kind: str, query_text: str | None) -> None:
        trace = get_current_trace()
        if trace is None:
            return
        trace.mark_search(kind, query_text)

    @staticmethod
    def _record_trace_results(result_count: int, total: int) -> None:
        trace = get_current_trace()
        if trace is None:
            return
        trace.set_result_summary(result_count, total)

    @instrument_stage("db")
    def _count(self, db: Session, conditions: list[ColumnElement[bool]]) -> int:
        return int(db.scalar(select(func.count()).select_from(Vendor).where(*conditions)) or 0)

    @instrument_stage("db")
    def _fetch_page(
        self,
        db: Session,
        conditions: list[ColumnElement[bool]],
        ordering: list[ColumnElement[Any]],
        score: ColumnElement[Any] | None,
        *,
        offset: int,
        limit: int,
    ) -> list[tuple[Vendor, float | None]]:
        columns = [Vendor] if score is None else [Vendor, score.label("score")]
        stmt = (
            select(*columns)
            .where(*conditions)
            .order_by(*ordering)
            .offset(offset)
            .limit(limit)
            .options(selectinload(Vendor.filter_values))
        )
        rows = db.execute(stmt).all()
        if score is None:
            return [(row[0], None) for row in rows]
        return [(row[0], row[1]) for row in rows]

    def comprehensive_search(self, db: Session, params: SearchParams) -> SearchPage:
        self._record_trace_query("comprehensive", params.query)
        builder = VendorQueryBuilder(params, dialect_name=db.get_bind().dialect.name)

        with timed_stage("text"):
            text_match, score = builder.text_search()
        with timed_stage("geo"):
            location_conditions = builder.location_conditions()

        conditions = [*builder.attribute_conditions(), *builder.budget_conditions(), *location_conditions]
        if text_match is not None:
            conditions.append(text_match)

        index_hint = select_index_hint(params)
        total = self._count(db, conditions)
        rows = self._fetch_page(
            db,
            conditions,
            builder.order_by(score),
            score,
            offset=(params.page - 1) * params.limit,
            limit=params.limit,
        )

        origin = (params.latitude, params.longitude) if params.has_coordinates else None
        results = [vendor_to_result(vendor, origin=origin, score=row_score) for vendor, row_score in rows]
        self._record_trace_results(len(results), total)
        logger.info(
            "vendor_search query=%r service=%s city=%s geo=%s sort=%s page=%s total=%s returned=%s index=%s",
            params.query,
            params.service_type,
            params.city,
            params.geo_active,
            params.sort,
            params.page,
            total,
            len(results),
            index_hint,
        )
        return SearchPage(
            results=results,
            search_criteria=params.criteria(),
            **page_metadata(total, params.page, params.limit),
        )

    @instrument_stage("db")
    def featured_vendors(
        self,
        db: Session,
        *,
        service_type: str | None = None,
        city: str | None = None,
        limit: int = 10,
    ) -> list[VendorResult]:
        self._record_trace_query("featured", service_type)
        stmt = select(Vendor).where(Vendor.is_active.is_(True), Vendor.is_featured.is_(True))
        if service_type:
            stmt = stmt.where(Vendor.service_type.icontains(service_type, autoescape=True))
        if city:
            stmt = stmt.where(Vendor.city.icontains(city, autoescape=True))
        stmt = (
            stmt.order_by(Vendor.rating.desc(), Vendor.popularity_score.desc(), Vendor.id.asc())
            .limit(limit)
            .options(selectinload(Vendor.filter_values))
        )
        vendors = db.execute(stmt).scalars().all()
        self._record_trace_results(len(vendors), len(vendors))
        return [vendor_to_result(vendor) for vendor in vendors]

    def get_vendor(self, db: Session, vendor_id: str) -> VendorResult | None:
        stmt = (
            select(Vendor)
            .where(Vendor.vendor_id == vendor_id, Vendor.is_active.is_(True))
            .options(selectinload(Vendor.filter_values))
        )
        vendor = db.execute(stmt).scalar_one_or_none()
        if vendor is None:
            return None
        return vendor_to_result(vendor)


search_service = VendorSearchService()
