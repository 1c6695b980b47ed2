from __future__ import annotations

import logging

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..models import Area, City
from ..schemas import AreaPage, AreaView, CityView, LocationStats, PlaceName, PlaceNameList
from ..telemetry import instrument_stage
from .distance_service import display_distance_km, squared_distance_expression, within_radius_clause
from .overpass_client import OverpassClient, get_overpass_client

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


def normalize_place_name(name: str) -> str:
    return " ".join(name.lower().strip().split())


def city_view(city: City, distance: float | None = None) -> CityView:
    return CityView(
        id=city.id,
        osm_id=city.osm_id,
        name=city.name,
        state=city.state,
        place_type=city.place_type,
        lat=city.lat,
        lon=city.lon,
        population=city.population,
        area_count=city.area_count,
        distance=distance,
    )


def area_view(area: Area, distance: float | None = None) -> AreaView:
    return AreaView(
        id=area.id,
        osm_id=area.osm_id,
        city_id=area.city_id,
        city_name=area.city_name,
        name=area.name,
        place_type=area.place_type,
        lat=area.lat,
        lon=area.lon,
        distance=distance,
    )


class LocationService:
    """Stored city/area lookups, with the Overpass client behind name-based area lists."""

    def __init__(self, overpass: OverpassClient | None = None) -> None:
        self._overpass = overpass

    @property
    def overpass(self) -> OverpassClient:
        if self._overpass is None:
            self._overpass = get_overpass_client()
        return self._overpass

    @instrument_stage("db")
    def search_cities(self, db: Session, query: str, limit: int = 10) -> list[CityView]:
        normalized = normalize_place_name(query)
        prefix_rank = case((City.normalized_name.startswith(normalized, autoescape=True), 0), else_=1)
        stmt = (
            select(City)
            .where(City.normalized_name.contains(normalized, autoescape=True))
            .order_by(prefix_rank, City.population.desc().nulls_last(), City.name)
            .limit(limit)
        )
        return [city_view(city) for city in db.execute(stmt).scalars()]

    def get_city(self, db: Session, city_id: int) -> City | None:
        return db.get(City, city_id)

    @instrument_stage("db")
    def city_areas(self, db: Session, city_id: int, *, limit: int = 50, offset: int = 0) -> AreaPage | None:
        city = self.get_city(db, city_id)
        if city is None:
            return None
        total = db.scalar(select(func.count()).select_from(Area).where(Area.city_id == city_id)) or 0
        areas = db.execute(
            select(Area).where(Area.city_id == city_id).order_by(Area.name).offset(offset).limit(limit)
        ).scalars()
        return AreaPage(
            city=city_view(city),
            areas=[area_view(area) for area in areas],
            total=total,
            limit=limit,
            offset=offset,
        )

    @instrument_stage("db")
    def search_areas(self, db: Session, city_id: int, query: str | None = None, limit: int = 20) -> list[AreaView]:
        stmt = select(Area).where(Area.city_id == city_id)
        normalized = normalize_place_name(query or "")
        if normalized:
            prefix_rank = case((Area.normalized_name.startswith(normalized, autoescape=True), 0), else_=1)
            stmt = stmt.where(Area.normalized_name.contains(normalized, autoescape=True)).order_by(
                prefix_rank, Area.name
            )
        else:
            stmt = stmt.order_by(Area.name)
        return [area_view(area) for area in db.execute(stmt.limit(limit)).scalars()]

    @instrument_stage("db")
    def nearby_cities(self, db: Session, lat: float, lon: float, radius_km: float, limit: int = 10) -> list[CityView]:
        distance = squared_distance_expression(City.lat, City.lon, lat, lon)
        stmt = (
            select(City)
            .where(within_radius_clause(City.lat, City.lon, lat, lon, radius_km))
            .order_by(distance, City.id)
            .limit(limit)
        )
        return [
            city_view(city, display_distance_km(lat, lon, city.lat, city.lon)) for city in db.execute(stmt).scalars()
        ]

    @instrument_stage("db")
    def nearby_areas(self, db: Session, lat: float, lon: float, radius_km: float, limit: int = 20) -> list[AreaView]:
        distance = squared_distance_expression(Area.lat, Area.lon, lat, lon)
        stmt = (
            select(Area)
            .where(within_radius_clause(Area.lat, Area.lon, lat, lon, radius_km))
            .order_by(distance, Area.id)
            .limit(limit)
        )
        return [
            area_view(area, display_distance_km(lat, lon, area.lat, area.lon)) for area in db.execute(stmt).scalars()
        ]

    def stats(self, db: Session, *, include_cache: bool = True) -> LocationStats:
        cities = db.scalar(select(func.count()).select_from(City)) or 0
        areas = db.scalar(select(func.count()).select_from(Area)) or 0
        with_areas = db.scalar(select(func.count()).select_from(City).where(City.area_count > 0)) or 0
        return LocationStats(
            cities=cities,
            areas=areas,
            cities_with_areas=with_areas,
            cache=self.overpass.cache_stats() if include_cache else None,
        )

    def area_names_for_city(self, db: Session, city_name: str) -> PlaceNameList:
        normalized = self.overpass.normalize_city_name(city_name)
        stored = db.execute(
            select(Area.name)
            .join(City, Area.city_id == City.id)
            .where(City.normalized_name.in_(sorted({normalize_place_name(city_name), normalized})))
            .order_by(Area.name)
        ).scalars().all()
        if stored:
            return PlaceNameList(city=city_name, source="database", places=[PlaceName(name=name) for name in stored])

        places = self.overpass.fetch_areas_for_city(city_name)
        logger.debug("area_names_from_overpass city=%s count=%s", city_name, len(places))
        return PlaceNameList(city=city_name, source="overpass", places=[PlaceName(**place) for place in places])

    def osm_cities(self) -> PlaceNameList:
        return PlaceNameList(source="overpass", places=[PlaceName(**place) for place in self.overpass.fetch_cities()])


location_service = LocationService()
