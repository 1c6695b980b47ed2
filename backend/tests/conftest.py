from __future__ import annotations

import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from eventsearch.database import Base, get_db
from eventsearch.main import app
from eventsearch.models import Area, City, Vendor, VendorFilterValue

ANDHERI = (19.1136, 72.8697)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_vendor(session):
    counter = itertools.count(1)

    def factory(**overrides) -> Vendor:
        number = next(counter)
        filters = overrides.pop("filters", {})
        values = {
            "vendor_id": f"vendor-{number:03d}",
            "name": f"Vendor {number}",
            "service_type": "photography",
            "city": "Mumbai",
            "area": "Andheri",
            "lat": ANDHERI[0],
            "lng": ANDHERI[1],
            "pricing_min": 10000,
            "pricing_max": 50000,
            "rating": 4.0,
            "review_count": 10,
            "verified": False,
            "is_active": True,
            "is_featured": False,
            "popularity_score": 0,
            "response_time": "within_24hr",
            "search_keywords": [],
        }
        values.update(overrides)
        vendor = Vendor(**values)
        vendor.filter_values = [
            VendorFilterValue(filter_id=filter_id, value=value)
            for filter_id, filter_values in filters.items()
            for value in filter_values
        ]
        session.add(vendor)
        session.flush()
        return vendor

    return factory


@pytest.fixture
def make_city(session):
    def factory(name: str, lat: float, lon: float, *, population: int | None = None, areas=()) -> City:
        city = City(
            name=name,
            normalized_name=name.lower(),
            lat=lat,
            lon=lon,
            population=population,
            area_count=len(areas),
        )
        session.add(city)
        session.flush()
        for area_name, area_lat, area_lon in areas:
            session.add(
                Area(
                    city_id=city.id,
                    city_name=name,
                    name=area_name,
                    normalized_name=area_name.lower(),
                    lat=area_lat,
                    lon=area_lon,
                )
            )
        session.flush()
        return city

    return factory


@pytest.fixture
def client(session):
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
