from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..models import Area, City, Vendor
from ..schemas import SearchLocation, TierGroup, UnifiedSearchPage, UnifiedSearchRequest, VendorResult
from ..telemetry import get_current_trace, instrument_stage, timed_stage
from .distance_service import squared_distance_expression, within_radius_clause
from .embedding_service import EmbeddingService, get_embedding_service
from .search_service import (
    SearchParams,
    SearchValidationError,
    VendorQueryBuilder,
    normalize_search_params,
    page_metadata,
    vendor_to_result,
)

logger = logging.getLogger(__name__)

TIER_EXACT_AREA = "exact_area"
TIER_NEARBY = "nearby"
TIER_SAME_CITY = "same_city"
TIER_ADJACENT_CITY = "adjacent_city"
TIER_ALL = "all"

TIER_DEFINITIONS = (
    (TIER_EXACT_AREA, "Same Area Vendors", 1),
    (TIER_NEARBY, "Nearby Vendors", 2),
    (TIER_SAME_CITY, "Same City", 3),
    (TIER_ADJACENT_CITY, "Nearby Cities", 4),
    (TIER_ALL, "All Results", 5),
)
TIER_NAMES = tuple(name for name, _, _ in TIER_DEFINITIONS)


def group_vendors_by_tier(results: list[VendorResult]) -> list[TierGroup]:
    """Bucket results by ``match_tier`` in fixed priority order, dropping empty buckets.

    Results without a recognised tier land in ``all``. Order inside a bucket
    follows the input order.
    """
    buckets: dict[str, list[VendorResult]] = {name: [] for name in TIER_NAMES}
    for result in results:
        tier = result.match_tier if result.match_tier in buckets else TIER_ALL
        buckets[tier].append(result)

    return [
        TierGroup(tier=name, title=title, priority=priority, vendors=buckets[name])
        for name, title, priority in TIER_DEFINITIONS
        if buckets[name]
    ]


@dataclass
class ResolvedLocation:
    city: str | None
    area: str | None
    latitude: float | None
    longitude: float | None
    radius_km: float
    source: str

    @property
    def has_point(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def origin(self) -> tuple[float, float] | None:
        if not self.has_point:
            return None
        return self.latitude, self.longitude


def _same_text(column, value: str) -> ColumnElement[bool]:
    return func.lower(func.trim(column)) == value.strip().lower()


def resolve_search_location(db: Session, params: SearchParams, area_id: int | None = None) -> ResolvedLocation:
    """Pick the search origin: coordinates, then area id, then city + area, then city alone."""
    radius_km = params.radius_km or settings.search_default_radius_km

    if params.has_coordinates:
        return ResolvedLocation(params.city, params.area, params.latitude, params.longitude, radius_km, "coordinates")

    if area_id is not None:
        area = db.get(Area, area_id)
        if area is None:
            raise SearchValidationError(f"Unknown area id: {area_id}")
        return ResolvedLocation(area.city_name, area.name, area.lat, area.lon, radius_km, "area_id")

    if not params.city:
        return ResolvedLocation(None, params.area, None, None, radius_km, "none")

    city = db.execute(
        select(City)
        .where(_same_text(City.name, params.city))
        .order_by(City.population.desc().nulls_last(), City.id)
        .limit(1)
    ).scalar_one_or_none()

    if params.area and city is not None:
        area = db.execute(
            select(Area).where(Area.city_id == city.id, _same_text(Area.name, params.area)).limit(1)
        ).scalar_one_or_none()
        if area is not None:
            return ResolvedLocation(city.name, area.name, area.lat, area.lon, radius_km, "area")

    if city is not None:
        return ResolvedLocation(city.name, params.area, city.lat, city.lon, radius_km, "city")
    return ResolvedLocation(params.city, params.area, None, None, radius_km, "city_name")


class TieredVendorSearch:
    """Assigns each matching vendor to the closest geographic tier around the search origin.

    Tiers are filled in priority order and a vendor appears in at most one
    tier. Adjacent cities and semantic neighbours are only consulted while
    fewer than ``min_results_threshold`` vendors have been found.
    """

    def __init__(self, embeddings: EmbeddingService | None = None) -> None:
        self._embeddings = embeddings

    @property
    def embeddings(self) -> EmbeddingService:
        if self._embeddings is None:
            self._embeddings = get_embedding_service()
        return self._embeddings

    @instrument_stage("db")
    def _fetch(
        self,
        db: Session,
        conditions: list[ColumnElement[bool]],
        ordering: list[ColumnElement[Any]],
        limit: int,
        exclude: set[int],
    ) -> list[Vendor]:
        if exclude:
            conditions = [*conditions, Vendor.id.not_in(sorted(exclude))]
        stmt = (
            select(Vendor)
            .where(*conditions)
            .order_by(*ordering, Vendor.id.asc())
            .limit(limit)
            .options(selectinload(Vendor.filter_values))
        )
        return list(db.execute(stmt).scalars().all())

    def _semantic_neighbours(
        self,
        db: Session,
        params: SearchParams,
        base: list[ColumnElement[bool]],
        limit: int,
        exclude: set[int],
    ) -> list[Vendor]:
        query_vector = self.embeddings.encode(params.query or "")
        distance = Vendor.embedding.cosine_distance(query_vector)
        conditions = [*base, Vendor.embedding.is_not(None), distance <= settings.semantic_max_distance]
        return self._fetch(db, conditions, [distance.asc()], limit, exclude)

    def search(self, db: Session, request: UnifiedSearchRequest) -> UnifiedSearchPage:
        params = normalize_search_params(request)
        trace = get_current_trace()
        if trace is not None:
            trace.mark_search("unified", params.query)

        with timed_stage("geo"):
            location = resolve_search_location(db, params, request.area_id)

        dialect_name = db.get_bind().dialect.name
        builder = VendorQueryBuilder(params, dialect_name=dialect_name)
        with timed_stage("text"):
            text_match, _ = builder.text_search()

        base = builder.attribute_conditions()
        if text_match is not None:
            base.append(text_match)
        strict_budget = builder.budget_conditions()
        flexible_budget = builder.budget_conditions(settings.budget_flexibility_percent)

        distance = None
        if location.has_point:
            distance = squared_distance_expression(Vendor.lat, Vendor.lng, location.latitude, location.longitude)
        by_rank = [Vendor.is_featured.desc(), Vendor.rating.desc(), Vendor.review_count.desc()]

        tiered: list[tuple[Vendor, str]] = []
        seen: set[int] = set()

        def collect(vendors: list[Vendor], tier: str) -> None:
            for vendor in vendors:
                if vendor.id not in seen:
                    seen.add(vendor.id)
                    tiered.append((vendor, tier))

        if location.city and location.area:
            collect(
                self._fetch(
                    db,
                    [*base, *strict_budget, _same_text(Vendor.city, location.city), _same_text(Vendor.area, location.area)],
                    by_rank,
                    settings.max_exact_area_results,
                    seen,
                ),
                TIER_EXACT_AREA,
            )

        if location.has_point:
            radius_clause = within_radius_clause(
                Vendor.lat, Vendor.lng, location.latitude, location.longitude, location.radius_km
            )
            collect(
                self._fetch(db, [*base, *strict_budget, radius_clause], [distance.asc()], settings.max_nearby_results, seen),
                TIER_NEARBY,
            )

        if location.city:
            collect(
                self._fetch(
                    db,
                    [*base, *flexible_budget, _same_text(Vendor.city, location.city)],
                    [distance.asc()] if distance is not None else [Vendor.rating.desc()],
                    settings.max_same_city_results,
                    seen,
                ),
                TIER_SAME_CITY,
            )

        if len(tiered) < settings.min_results_threshold and location.has_point:
            conditions = [
                *base,
                *flexible_budget,
                within_radius_clause(
                    Vendor.lat, Vendor.lng, location.latitude, location.longitude, settings.adjacent_city_radius_km
                ),
            ]
            if location.city:
                conditions.append(~_same_text(Vendor.city, location.city))
            collect(
                self._fetch(db, conditions, [distance.asc()], settings.max_adjacent_city_results, seen),
                TIER_ADJACENT_CITY,
            )

        if len(tiered) < settings.min_results_threshold and params.query and dialect_name == "postgresql":
            semantic_base = [*builder.attribute_conditions(), *flexible_budget]
            collect(
                self._semantic_neighbours(db, params, semantic_base, settings.min_results_threshold * 2, seen),
                TIER_ALL,
            )

        if not tiered:
            collect(
                self._fetch(
                    db,
                    [*base, *strict_budget],
                    builder.order_by(None),
                    settings.fallback_result_limit,
                    seen,
                ),
                TIER_ALL,
            )

        with timed_stage("tiering"):
            results = [
                vendor_to_result(vendor, origin=location.origin, match_tier=tier) for vendor, tier in tiered
            ]
            breakdown = {name: 0 for name in TIER_NAMES}
            for result in results:
                breakdown[result.match_tier] += 1

            start = (params.page - 1) * params.limit
            page_results = results[start : start + params.limit]
            groups = group_vendors_by_tier(page_results) if request.group_by_tier else None

        if trace is not None:
            trace.set_result_summary(len(page_results), len(results))
        logger.info(
            "unified_search query=%r city=%s area=%s source=%s total=%s breakdown=%s",
            params.query,
            location.city,
            location.area,
            location.source,
            len(results),
            breakdown,
        )

        return UnifiedSearchPage(
            results=page_results,
            search_criteria=params.criteria(),
            tier_breakdown=breakdown,
            search_location=SearchLocation(
                city=location.city,
                area=location.area,
                latitude=location.latitude,
                longitude=location.longitude,
                radius=location.radius_km,
                source=location.source,
            ),
            applied_filters={
                "query": params.query,
                "serviceType": params.service_type,
                "budget": {"min": params.budget_min, "max": params.budget_max},
                "budgetFlexibilityPercent": settings.budget_flexibility_percent,
                "verified": params.verified,
                "rating": params.min_rating,
                "filters": params.filters,
            },
            groups=groups,
            timestamp=datetime.now(timezone.utc),
            **page_metadata(len(results), params.page, params.limit),
        )


tiered_search = TieredVendorSearch()
