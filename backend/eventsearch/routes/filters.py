from typing import Any

from fastapi import APIRouter, Query

from ..errors import api_error
from ..schemas import (
    ApiResponse,
    DetectIntentRequest,
    DetectIntentView,
    FilterContextRequest,
    FilterErrorView,
    FilterSchemaView,
    FilterValidationView,
    TaxonomyMatchView,
    ValidateFiltersRequest,
)
from ..services.filter_service import FilterSchema, SearchContext, get_filter_service, validate_applied_filters
from ..services.taxonomy_service import NODE_TYPES, get_taxonomy_service

router = APIRouter(tags=["filters"])


def _context(payload: FilterContextRequest) -> SearchContext:
    location = payload.location
    return SearchContext(
        query=payload.query,
        category=payload.category,
        event_type=payload.event_type,
        city=location.city if location else None,
        area=location.area if location else None,
    )


def _schema_view(schema: FilterSchema) -> FilterSchemaView:
    return FilterSchemaView(
        universal=schema.universal,
        specific=schema.specific,
        hierarchy=schema.hierarchy,
        detected_service=schema.detected_service,
    )


@router.post("/filters", response_model=ApiResponse[FilterSchemaView])
def generate_filters(payload: FilterContextRequest) -> ApiResponse[FilterSchemaView]:
    schema = get_filter_service().generate_filters(_context(payload))
    return ApiResponse(data=_schema_view(schema))


@router.get("/services/{service_id}/filters", response_model=ApiResponse[FilterSchemaView])
def service_filters(service_id: str) -> ApiResponse[FilterSchemaView]:
    service = get_filter_service()
    if service.get_service_config(service_id) is None:
        raise api_error(404, "SERVICE_NOT_FOUND", f"No filter configuration for service '{service_id}'")
    return ApiResponse(data=_schema_view(service.get_filters_for_service(service_id)))


@router.post("/filters/validate", response_model=ApiResponse[FilterValidationView])
def validate_filters(payload: ValidateFiltersRequest) -> ApiResponse[FilterValidationView]:
    service = get_filter_service()
    if payload.service_id:
        schema = service.get_filters_for_service(payload.service_id)
    else:
        schema = service.generate_filters(_context(payload))

    result = validate_applied_filters(payload.applied, schema)
    return ApiResponse(
        data=FilterValidationView(
            valid=result.valid,
            errors=[FilterErrorView(filter_id=error.filter_id, message=error.message) for error in result.errors],
            validated=result.validated,
        )
    )


@router.post("/detect-service-intent", response_model=ApiResponse[DetectIntentView])
def detect_service_intent(payload: DetectIntentRequest) -> ApiResponse[DetectIntentView]:
    matches = get_taxonomy_service().search_taxonomy(payload.query, types=("service",))
    return ApiResponse(
        data=DetectIntentView(
            service_id=matches[0].taxonomy_id if matches else None,
            matches=[TaxonomyMatchView(**match.to_dict()) for match in matches[:5]],
        )
    )


@router.get("/taxonomy/search", response_model=ApiResponse[list[TaxonomyMatchView]])
def taxonomy_search(
    q: str = Query(default=""),
    type: list[str] | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> ApiResponse[list[TaxonomyMatchView]]:
    types = tuple(value for value in (type or NODE_TYPES) if value in NODE_TYPES)
    if not types:
        raise api_error(400, "INVALID_TAXONOMY_TYPE", f"type must be one of {', '.join(NODE_TYPES)}")
    matches = get_taxonomy_service().search_taxonomy(q, types=types)
    return ApiResponse(data=[TaxonomyMatchView(**match.to_dict()) for match in matches[:limit]])


@router.get("/common-filters", response_model=ApiResponse[dict[str, Any]])
def common_filters() -> ApiResponse[dict[str, Any]]:
    return ApiResponse(data=get_filter_service().common_filters())
