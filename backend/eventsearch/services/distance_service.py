from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.32


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def display_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return round(haversine_km(lat1, lon1, lat2, lon2), 2)


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)}m"
    return f"{distance_km:.1f}km"


def is_valid_coordinate(lat: float | None, lng: float | None) -> bool:
    if lat is None or lng is None:
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    lat_delta = radius_km / KM_PER_DEGREE
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    lng_delta = radius_km / (KM_PER_DEGREE * cos_lat)
    return BoundingBox(
        min_lat=lat - lat_delta,
        max_lat=lat + lat_delta,
        min_lng=lng - lng_delta,
        max_lng=lng + lng_delta,
    )


def squared_distance_expression(lat_column, lng_column, lat: float, lng: float):
    """Equirectangular squared distance in km^2, evaluated in SQL. Error stays under 1% below 100 km."""
    lng_scale = KM_PER_DEGREE * math.cos(math.radians(lat))
    d_lat = (lat_column - lat) * KM_PER_DEGREE
    d_lng = (lng_column - lng) * lng_scale
    return d_lat * d_lat + d_lng * d_lng


def within_radius_clause(lat_column, lng_column, lat: float, lng: float, radius_km: float) -> ColumnElement[bool]:
    box = bounding_box(lat, lng, radius_km)
    return and_(
        lat_column.between(box.min_lat, box.max_lat),
        lng_column.between(box.min_lng, box.max_lng),
        squared_distance_expression(lat_column, lng_column, lat, lng) <= radius_km * radius_km,
    )
