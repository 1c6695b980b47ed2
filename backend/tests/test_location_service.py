from __future__ import annotations

import httpx
import pytest

from eventsearch.services.location_service import LocationService
from eventsearch.services.overpass_client import OverpassClient


@pytest.fixture
def offline_service():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    overpass = OverpassClient(
        urls=["https://overpass.test/api"],
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda seconds: None,
    )
    return LocationService(overpass=overpass)


def test_city_search_ranks_prefix_then_population(session, make_city, offline_service):
    make_city("Jaipur", 26.91, 75.79, population=3046163)
    make_city("Puducherry", 11.94, 79.81, population=244377)
    make_city("Pune", 18.52, 73.86, population=3124458)
    make_city("Indore", 22.72, 75.86, population=1964086)

    cities = offline_service.search_cities(session, "PU")

    assert [city.name for city in cities] == ["Pune", "Puducherry", "Jaipur"]


def test_city_areas_paginated(session, make_city, offline_service):
    city = make_city(
        "Indore",
        22.72,
        75.86,
        areas=[("Vijay Nagar", 22.75, 75.89), ("Palasia", 22.72, 75.88), ("Rajwada", 22.71, 75.85)],
    )

    page = offline_service.city_areas(session, city.id, limit=2, offset=1)

    assert page.total == 3
    assert [area.name for area in page.areas] == ["Rajwada", "Vijay Nagar"]
    assert offline_service.city_areas(session, 404) is None


def test_area_search_within_city(session, make_city, offline_service):
    city = make_city("Indore", 22.72, 75.86, areas=[("Vijay Nagar", 22.75, 75.89), ("Palasia", 22.72, 75.88)])
    make_city("Jaipur", 26.91, 75.79, areas=[("Vaishali Nagar", 26.91, 75.74)])

    areas = offline_service.search_areas(session, city.id, "nagar")

    assert [area.name for area in areas] == ["Vijay Nagar"]


def test_nearby_cities_sorted_by_distance(session, make_city, offline_service):
    make_city("Mumbai", 19.0760, 72.8777)
    make_city("Thane", 19.2183, 72.9781)
    make_city("Pune", 18.5204, 73.8567)

    cities = offline_service.nearby_cities(session, 19.0760, 72.8777, radius_km=50)

    assert [city.name for city in cities] == ["Mumbai", "Thane"]
    assert cities[0].distance == 0


def test_area_names_prefer_database(session, make_city, offline_service):
    make_city("Indore", 22.72, 75.86, areas=[("Palasia", 22.72, 75.88)])

    stored = offline_service.area_names_for_city(session, "Indore")

    assert stored.source == "database"
    assert [place.name for place in stored.places] == ["Palasia"]


def test_area_names_fall_back_to_overpass(session, offline_service):
    result = offline_service.area_names_for_city(session, "Jaipur")

    assert result.source == "overpass"
    assert "Malviya Nagar" in [place.name for place in result.places]


def test_stats_counts(session, make_city, offline_service):
    make_city("Indore", 22.72, 75.86, areas=[("Palasia", 22.72, 75.88)])
    make_city("Pune", 18.52, 73.86)

    stats = offline_service.stats(session)

    assert (stats.cities, stats.areas, stats.cities_with_areas) == (2, 1, 1)
    assert stats.cache["size"] == 0
