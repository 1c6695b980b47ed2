from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import api_error
from ..schemas import ApiResponse, AreaPage, AreaView, CityView, LocationStats, NearbyPlaces, PlaceNameList
from ..services.distance_service import is_valid_coordinate
from ..services.location_service import MIN_QUERY_LENGTH, location_service

router = APIRouter(prefix="/locations", tags=["locations"])


def _require_query(q: str) -> str:
    term = q.strip()
    if len(term) < MIN_QUERY_LENGTH:
        raise api_error(400, "QUERY_TOO_SHORT", f"Query must be at least {MIN_QUERY_LENGTH} characters")
    return term


@router.get("/cities/search", response_model=ApiResponse[list[CityView]])
def search_cities(
    q: str = Query(default=""),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> ApiResponse[list[CityView]]:
    return ApiResponse(data=location_service.search_cities(db, _require_query(q), limit))


@router.get("/cities/{city_id}/areas", response_model=ApiResponse[AreaPage])
def city_areas(
    city_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[AreaPage]:
    page = location_service.city_areas(db, city_id, limit=limit, offset=offset)
    if page is None:
        raise api_error(404, "CITY_NOT_FOUND", f"City {city_id} was not found")
    return ApiResponse(data=page)


@router.get("/areas/search", response_model=ApiResponse[list[AreaView]])
def search_areas(
    city_id: int = Query(alias="cityId"),
    q: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> ApiResponse[list[AreaView]]:
    if location_service.get_city(db, city_id) is None:
        raise api_error(404, "CITY_NOT_FOUND", f"City {city_id} was not found")
    return ApiResponse(data=location_service.search_areas(db, city_id, q, limit))


@router.get("/nearby", response_model=ApiResponse[NearbyPlaces])
def nearby(
    lat: float = Query(),
    lng: float = Query(),
    radius: float = Query(default=10, ge=1, le=100),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> ApiResponse[NearbyPlaces]:
    if not is_valid_coordinate(lat, lng):
        raise api_error(400, "INVALID_COORDINATES", f"Invalid coordinates: lat={lat}, lng={lng}")
    return ApiResponse(
        data=NearbyPlaces(
            cities=location_service.nearby_cities(db, lat, lng, radius, limit),
            areas=location_service.nearby_areas(db, lat, lng, radius, limit),
        )
    )


@router.get("/stats", response_model=ApiResponse[LocationStats])
def stats(db: Session = Depends(get_db)) -> ApiResponse[LocationStats]:
    return ApiResponse(data=location_service.stats(db))


@router.get("/cities/name/{city_name}/areas", response_model=ApiResponse[PlaceNameList])
def areas_by_city_name(city_name: str, db: Session = Depends(get_db)) -> ApiResponse[PlaceNameList]:
    return ApiResponse(data=location_service.area_names_for_city(db, city_name))


@router.get("/osm/cities", response_model=ApiResponse[PlaceNameList])
def osm_cities() -> ApiResponse[PlaceNameList]:
    return ApiResponse(data=location_service.osm_cities())
