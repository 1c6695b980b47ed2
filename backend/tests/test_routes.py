from __future__ import annotations

import json

from sqlalchemy.exc import OperationalError

from eventsearch.services.search_service import search_service


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_search_envelope_uses_camel_case(client, make_vendor):
    for _ in range(3):
        make_vendor()

    response = client.post("/api/search", json={"serviceId": "photography", "page": 1, "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["total"] == 3
    assert body["data"]["totalPages"] == 2
    assert body["data"]["hasNextPage"] is True
    assert body["data"]["results"][0]["vendorId"].startswith("vendor-")
    assert response.headers["X-Request-Id"]

    performance = json.loads(response.headers["X-Search-Performance"])
    assert performance["search"] == "comprehensive"
    assert "db;dur=" in response.headers["Server-Timing"]


def test_search_rejects_invalid_coordinates(client):
    response = client.post("/api/search", json={"location": {"latitude": 120, "longitude": 72.8}})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INVALID_SEARCH"


def test_search_body_validation_error(client):
    response = client.post("/api/search", json={"page": "first"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_unified_search_route(client, make_vendor):
    make_vendor(vendor_id="andheri")

    response = client.post(
        "/api/search/unified",
        json={"location": {"city": "Mumbai", "area": "Andheri"}, "groupByTier": True},
    )

    data = response.json()["data"]
    assert data["tierBreakdown"]["exact_area"] == 1
    assert data["groups"][0]["title"] == "Same Area Vendors"
    assert data["searchLocation"]["source"] == "city_name"


def test_vendor_not_found(client):
    response = client.get("/api/search/vendor/missing")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "VENDOR_NOT_FOUND"


def test_vendor_detail_and_by_service(client, make_vendor):
    make_vendor(vendor_id="dj-1", service_type="dj", city="Pune")

    assert client.get("/api/search/vendor/dj-1").json()["data"]["serviceType"] == "dj"
    listing = client.get("/api/search/by-service/dj", params={"city": "pune"}).json()["data"]
    assert [item["vendorId"] for item in listing["results"]] == ["dj-1"]


def test_suggestions_route(client):
    response = client.get("/api/search/suggestions", params={"q": "photographer", "limit": 5})

    items = response.json()["data"]
    assert "photography" in [item["taxonomyId"] for item in items]
    assert len(items) <= 5


def test_generate_filters_route(client):
    response = client.post("/api/filters", json={"query": "photographer", "location": {"city": "Indore"}})

    data = response.json()["data"]
    assert data["detectedService"] == "photography"
    assert data["specific"][0]["id"] == "location_city"


def test_validate_filters_route(client):
    response = client.post(
        "/api/filters/validate",
        json={"serviceId": "photography", "applied": {"mystery": 1, "photography_type": ["candid"]}},
    )

    data = response.json()["data"]
    assert data["valid"] is False
    assert data["errors"] == [{"filterId": "mystery", "message": "Unknown filter"}]


def test_service_filters_route(client):
    assert client.get("/api/services/photography/filters").status_code == 200
    missing = client.get("/api/services/unknown/filters")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "SERVICE_NOT_FOUND"


def test_detect_service_intent_route(client):
    response = client.post("/api/detect-service-intent", json={"query": "need a wedding dj"})
    assert response.json()["data"]["serviceId"] in {"dj", "music"}


def test_common_filters_route(client):
    data = client.get("/api/common-filters").json()["data"]
    assert {"location", "budget", "rating", "verified", "availability"} <= set(data)


def test_city_search_requires_two_characters(client):
    response = client.get("/api/locations/cities/search", params={"q": "a"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "QUERY_TOO_SHORT"


def test_city_areas_not_found(client):
    response = client.get("/api/locations/cities/999/areas")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "CITY_NOT_FOUND"


def test_area_search_requires_city_id(client):
    assert client.get("/api/locations/areas/search").status_code == 422


def test_dynamic_endpoints(client, make_vendor):
    make_vendor(service_type="dj", city="Pune", verified=True, rating=4.4)

    assert client.get("/api/dynamic/service-types").json()["data"] == [{"value": "dj", "label": "Dj", "count": 1}]
    assert client.get("/api/dynamic/cities").json()["data"][0]["value"] == "Pune"
    assert len(client.get("/api/dynamic/price-ranges").json()["data"]) >= 1
    stats = client.get("/api/dynamic/filter-stats").json()["data"]
    assert stats["ratingBreakdown"]["4+"] == 1
    assert client.get("/api/dynamic/search-suggestions", params={"q": "p"}).status_code == 400


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_validate_filters_reports_invalid_range(client):
    response = client.post(
        "/api/filters/validate",
        json={"serviceId": "photography", "applied": {"budget": {"min": "abc"}}},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["valid"] is False
    assert data["errors"] == [{"filterId": "budget", "message": "Invalid range"}]


def test_database_failure_maps_to_search_unavailable(client, monkeypatch):
    def unavailable(db, params):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(search_service, "comprehensive_search", unavailable)

    response = client.post("/api/search", json={"query": "dj"})

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "SEARCH_UNAVAILABLE"
