from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import api_error
from ..schemas import (
    ApiResponse,
    LocationInput,
    SearchPage,
    SearchRequest,
    SuggestionItem,
    UnifiedSearchPage,
    UnifiedSearchRequest,
    VendorResult,
)
from ..services.search_service import normalize_search_params, search_service
from ..services.taxonomy_service import get_taxonomy_service
from ..services.tier_service import tiered_search

router = APIRouter(tags=["search"])


@router.post("/search", response_model=ApiResponse[SearchPage])
def search(payload: SearchRequest, db: Session = Depends(get_db)) -> ApiResponse[SearchPage]:
    params = normalize_search_params(payload)
    return ApiResponse(data=search_service.comprehensive_search(db, params))


@router.post("/search/unified", response_model=ApiResponse[UnifiedSearchPage])
def unified_search(payload: UnifiedSearchRequest, db: Session = Depends(get_db)) -> ApiResponse[UnifiedSearchPage]:
    return ApiResponse(data=tiered_search.search(db, payload))


@router.get("/search/suggestions", response_model=ApiResponse[list[SuggestionItem]])
def suggestions(
    q: str = Query(default=""),
    limit: int = Query(default=10, ge=1, le=50),
) -> ApiResponse[list[SuggestionItem]]:
    items = get_taxonomy_service().get_search_suggestions(q, limit)
    return ApiResponse(data=[SuggestionItem(**item) for item in items])


@router.get("/search/featured", response_model=ApiResponse[list[VendorResult]])
def featured(
    service_type: str | None = Query(default=None, alias="serviceType"),
    city: str | None = Query(default=None),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> ApiResponse[list[VendorResult]]:
    vendors = search_service.featured_vendors(db, service_type=service_type, city=city, limit=limit)
    return ApiResponse(data=vendors)


@router.get("/search/by-service/{service_type}", response_model=ApiResponse[SearchPage])
def by_service(
    service_type: str,
    city: str | None = Query(default=None),
    area: str | None = Query(default=None),
    sort: str = Query(default="rating"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> ApiResponse[SearchPage]:
    request = SearchRequest(
        service_type=service_type,
        location=LocationInput(city=city, area=area) if city or area else None,
        sort=sort,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=search_service.comprehensive_search(db, normalize_search_params(request)))


@router.get("/search/vendor/{vendor_id}", response_model=ApiResponse[VendorResult])
def vendor_detail(vendor_id: str, db: Session = Depends(get_db)) -> ApiResponse[VendorResult]:
    vendor = search_service.get_vendor(db, vendor_id)
    if vendor is None:
        raise api_error(404, "VENDOR_NOT_FOUND", f"Vendor '{vendor_id}' was not found")
    return ApiResponse(data=vendor)
