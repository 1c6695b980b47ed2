from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import api_error
from ..schemas import ApiResponse, CatalogOption, CatalogSuggestion, FilterStats, PriceRangeOption
from ..services.catalog_service import catalog_service

router = APIRouter(prefix="/dynamic", tags=["dynamic"])


@router.get("/service-types", response_model=ApiResponse[list[CatalogOption]])
def service_types(db: Session = Depends(get_db)) -> ApiResponse[list[CatalogOption]]:
    return ApiResponse(data=catalog_service.service_types(db))


@router.get("/cities", response_model=ApiResponse[list[CatalogOption]])
def cities(db: Session = Depends(get_db)) -> ApiResponse[list[CatalogOption]]:
    return ApiResponse(data=catalog_service.cities(db))


@router.get("/price-ranges", response_model=ApiResponse[list[PriceRangeOption]])
def price_ranges(db: Session = Depends(get_db)) -> ApiResponse[list[PriceRangeOption]]:
    return ApiResponse(data=catalog_service.price_ranges(db))


@router.get("/search-suggestions", response_model=ApiResponse[list[CatalogSuggestion]])
def search_suggestions(
    q: str = Query(default=""),
    limit: int = Query(default=8, ge=1, le=20),
    db: Session = Depends(get_db),
) -> ApiResponse[list[CatalogSuggestion]]:
    if len(q.strip()) < 2:
        raise api_error(400, "QUERY_TOO_SHORT", "Query must be at least 2 characters")
    return ApiResponse(data=catalog_service.search_suggestions(db, q, limit))


@router.get("/filter-stats", response_model=ApiResponse[FilterStats])
def filter_stats(db: Session = Depends(get_db)) -> ApiResponse[FilterStats]:
    return ApiResponse(data=catalog_service.filter_stats(db))
