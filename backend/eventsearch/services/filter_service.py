from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from .taxonomy_service import TaxonomyService, get_taxonomy_service

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
SERVICE_FILTERS_PATH = DATA_DIR / "service_filters.json"
EVENT_TAXONOMY_PATH = DATA_DIR / "event_taxonomy.json"

MAX_HIERARCHY_CATEGORIES = 3
MAX_HIERARCHY_SERVICES = 10
DEFAULT_SEARCH_RADIUS_KM = 10

Filter = dict[str, Any]


@dataclass
class SearchContext:
    query: str = ""
    category: str = ""
    event_type: str = ""
    city: str | None = None
    area: str | None = None


@dataclass
class FilterSchema:
    universal: list[Filter]
    specific: list[Filter] = field(default_factory=list)
    hierarchy: dict[str, Any] | None = None
    detected_service: str | None = None

    def find(self, filter_id: str) -> Filter | None:
        for item in [*self.universal, *self.specific]:
            if item.get("id") == filter_id:
                return item
        return None


@dataclass
class FilterValidationError:
    filter_id: str
    message: str


@dataclass
class FilterValidationResult:
    valid: bool
    errors: list[FilterValidationError]
    validated: dict[str, Any]


def _option_value(label: str) -> str:
    return re.sub(r"\s+", "_", str(label).lower())


class FilterService:
    """Builds per-request filter schemas from static service configuration.

    Every schema is assembled from deep copies of the configuration so that
    per-service overrides never leak into later requests.
    """

    def __init__(
        self,
        taxonomy: TaxonomyService | None = None,
        service_filters_path: Path | None = None,
        event_taxonomy_path: Path | None = None,
    ) -> None:
        self.taxonomy = taxonomy or get_taxonomy_service()
        config = json.loads((service_filters_path or SERVICE_FILTERS_PATH).read_text(encoding="utf-8"))
        self._universal: list[Filter] = config["universal"]
        self._common: dict[str, Filter] = config.get("common", {})
        self._event_types: list[dict[str, str]] = config.get("event_types", [])
        self._services: dict[str, dict[str, Any]] = config.get("services", {})
        self._sections: list[dict[str, Any]] = json.loads(
            (event_taxonomy_path or EVENT_TAXONOMY_PATH).read_text(encoding="utf-8")
        )

    def universal_filters(self) -> list[Filter]:
        return copy.deepcopy(self._universal)

    def common_filters(self) -> dict[str, Filter]:
        return copy.deepcopy(self._common)

    def get_service_config(self, service_id: str | None) -> dict[str, Any] | None:
        if not service_id or service_id not in self._services:
            return None
        return copy.deepcopy(self._services[service_id])

    def detect_service(self, query: str | None) -> str | None:
        return self.taxonomy.detect_service_from_query(query)

    def generate_filters(self, context: SearchContext) -> FilterSchema:
        detected = None
        if context.query:
            detected = self.detect_service(context.query)
        if not detected and context.category:
            detected = self.detect_service(context.category)

        schema = FilterSchema(universal=self.universal_filters(), detected_service=detected)

        service_config = self.get_service_config(detected)
        if service_config:
            schema.specific = service_config.get("filters", [])
            budget_range = service_config.get("budgetRange")
            budget_filter = schema.find("budget")
            if budget_range and budget_filter is not None:
                budget_filter["min"] = budget_range["min"]
                budget_filter["max"] = budget_range["max"]
                if budget_range.get("presets"):
                    budget_filter["presets"] = budget_range["presets"]

        hierarchy = self._build_hierarchy(context.query)
        if hierarchy["categories"]:
            schema.hierarchy = hierarchy

        if context.event_type:
            schema.specific.append(
                {
                    "id": "event_type",
                    "label": "Event Type",
                    "type": "select",
                    "value": context.event_type,
                    "options": copy.deepcopy(self._event_types),
                }
            )

        location_filters: list[Filter] = []
        if context.city:
            location_filters.append(
                {"id": "location_city", "label": "City", "type": "select", "value": context.city, "locked": True}
            )
        if context.city and context.area:
            location_filters.append(
                {"id": "location_area", "label": "Area", "type": "select", "value": context.area, "locked": True}
            )
        schema.specific[:0] = location_filters

        logger.debug(
            "filters_generated query=%r detected=%s specific=%s hierarchy=%s",
            context.query,
            detected,
            len(schema.specific),
            len(hierarchy["categories"]),
        )
        return schema

    def get_filters_for_service(self, service_id: str) -> FilterSchema:
        config = self.get_service_config(service_id)
        if config is None:
            return FilterSchema(universal=self.universal_filters())
        return FilterSchema(
            universal=self.universal_filters(),
            specific=config.get("filters", []),
            detected_service=service_id,
        )

    def _build_hierarchy(self, query: str | None) -> dict[str, Any]:
        normalized = (query or "").strip().lower()
        categories: list[dict[str, Any]] = []

        for section in self._sections:
            title = str(section.get("title", ""))
            vendors = [str(vendor) for vendor in section.get("vendors", [])]
            services = [str(service) for service in section.get("services", [])]

            relevant = bool(normalized) and (
                normalized in title.lower()
                or title.lower() in normalized
                or any(normalized in vendor.lower() for vendor in vendors)
                or any(normalized in service.lower() for service in services)
            )
            if normalized and not relevant:
                continue

            children: list[Filter] = []
            if vendors:
                children.append(
                    {
                        "id": f"{section['id']}_vendors",
                        "label": "Vendor Type",
                        "type": "multiselect",
                        "options": [{"value": _option_value(vendor), "label": vendor} for vendor in vendors],
                    }
                )
            if services:
                children.append(
                    {
                        "id": f"{section['id']}_services",
                        "label": "Services Offered",
                        "type": "multiselect",
                        "options": [
                            {"value": _option_value(service), "label": service}
                            for service in services[:MAX_HIERARCHY_SERVICES]
                        ],
                    }
                )
            if children:
                categories.append(
                    {"id": section["id"], "label": title, "expanded": relevant or not normalized, "children": children}
                )
            if len(categories) == MAX_HIERARCHY_CATEGORIES:
                break

        return {"type": "hierarchy", "categories": categories}


def validate_applied_filters(applied: dict[str, Any], schema: FilterSchema) -> FilterValidationResult:
    """Check applied filter values against a schema; problems are collected, never raised."""
    errors: list[FilterValidationError] = []
    validated: dict[str, Any] = {}

    for filter_id, value in applied.items():
        definition = schema.find(filter_id)
        if definition is None:
            errors.append(FilterValidationError(filter_id=filter_id, message="Unknown filter"))
            continue

        filter_type = definition.get("type")
        if filter_type == "range":
            problem = _range_problem(value, definition)
            if problem is not None:
                errors.append(FilterValidationError(filter_id=filter_id, message=problem))
                continue
            validated[filter_id] = value
        elif filter_type == "multiselect":
            values = value if isinstance(value, list) else [value]
            validated[filter_id] = [item for item in values if item is not None and item != ""]
        else:
            validated[filter_id] = value

    return FilterValidationResult(valid=not errors, errors=errors, validated=validated)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _range_problem(value: Any, definition: Filter) -> str | None:
    if not isinstance(value, dict):
        return "Invalid range"
    requested_min = value.get("min")
    requested_max = value.get("max")
    if any(bound is not None and not _is_number(bound) for bound in (requested_min, requested_max)):
        return "Invalid range"

    lower = definition.get("min")
    upper = definition.get("max")
    if requested_min is not None and lower is not None and requested_min < lower:
        return "Range out of bounds"
    if requested_max is not None and upper is not None and requested_max > upper:
        return "Range out of bounds"
    return None


def build_search_payload(
    *,
    service_id: str | None,
    city: str | None = None,
    area: str | None = None,
    radius_km: float | None = None,
    budget: dict[str, float | None] | None = None,
    filters: dict[str, Any] | None = None,
    sort: str = "relevance",
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """Shape UI filter state into a ``POST /api/search`` request body."""
    active_filters = {
        key: value
        for key, value in (filters or {}).items()
        if value is not None and value != "" and value != [] and value is not False
    }
    payload: dict[str, Any] = {
        "serviceId": service_id,
        "location": {
            "city": city,
            "area": area,
            "radius": radius_km if radius_km is not None else DEFAULT_SEARCH_RADIUS_KM,
        },
        "filters": active_filters,
        "sort": sort,
        "page": page,
        "limit": limit,
    }
    if budget and (budget.get("min") is not None or budget.get("max") is not None):
        payload["budget"] = {"min": budget.get("min") or 0, "max": budget.get("max")}
    return payload


@lru_cache(maxsize=1)
def get_filter_service() -> FilterService:
    return FilterService()
