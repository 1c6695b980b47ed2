from __future__ import annotations

import argparse
import random
import sys
import uuid
from pathlib import Path

from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventsearch.database import session_scope
from eventsearch.models import RESPONSE_TIMES, Area, City, Vendor, VendorFilterValue
from eventsearch.services.filter_service import get_filter_service
from eventsearch.services.location_service import normalize_place_name

NAMESPACE = uuid.UUID("6f1c2d9e-4b7a-4f3e-9a51-2c8d7e0b1a44")

CITIES = [
    {
        "name": "Mumbai",
        "state": "Maharashtra",
        "lat": 19.0760,
        "lon": 72.8777,
        "population": 12442373,
        "areas": [("Andheri", 19.1136, 72.8697), ("Bandra", 19.0596, 72.8295), ("Powai", 19.1176, 72.9060)],
    },
    {
        "name": "Pune",
        "state": "Maharashtra",
        "lat": 18.5204,
        "lon": 73.8567,
        "population": 3124458,
        "areas": [("Kothrud", 18.5074, 73.8077), ("Baner", 18.5590, 73.7868), ("Viman Nagar", 18.5679, 73.9143)],
    },
    {
        "name": "Indore",
        "state": "Madhya Pradesh",
        "lat": 22.7196,
        "lon": 75.8577,
        "population": 1964086,
        "areas": [("Vijay Nagar", 22.7533, 75.8937), ("Palasia", 22.7236, 75.8847), ("Rajwada", 22.7185, 75.8553)],
    },
    {
        "name": "Bangalore",
        "state": "Karnataka",
        "lat": 12.9716,
        "lon": 77.5946,
        "population": 8443675,
        "areas": [("Koramangala", 12.9352, 77.6245), ("Indiranagar", 12.9784, 77.6408), ("Whitefield", 12.9698, 77.7500)],
    },
]

SERVICE_PRICING = {
    "photography": (15000, 150000),
    "tent": (20000, 300000),
    "pandit": (2100, 21000),
    "catering": (300, 2500),
    "music": (5000, 50000),
    "dj": (8000, 80000),
    "live_singers": (10000, 120000),
    "music_band": (25000, 250000),
    "choreographer": (5000, 60000),
    "emcee": (5000, 50000),
    "instrument_dealers": (1000, 30000),
}

NAME_PARTS = ("Shree", "Royal", "Golden", "Utsav", "Mangal", "Star", "Classic", "Dream")


def vendor_id_from_name(name: str) -> str:
    return str(uuid.uuid5(NAMESPACE, name))


def sample_filter_values(rng: random.Random, service_id: str) -> list[tuple[str, str]]:
    config = get_filter_service().get_service_config(service_id) or {}
    values: list[tuple[str, str]] = []
    for definition in config.get("filters", []):
        options = [option["value"] for option in definition.get("options", []) if "value" in option]
        if not options or definition.get("type") not in {"select", "multiselect", "radio"}:
            continue
        count = 2 if definition["type"] == "multiselect" and len(options) > 1 else 1
        values.extend((definition["id"], value) for value in rng.sample(options, count))
    return values


def upsert_city(session, item: dict) -> City:
    city = session.execute(select(City).where(City.normalized_name == normalize_place_name(item["name"]))).scalar_one_or_none()
    if city is None:
        city = City(name=item["name"], normalized_name=normalize_place_name(item["name"]), lat=item["lat"], lon=item["lon"])
        session.add(city)
    city.state = item["state"]
    city.population = item["population"]
    session.flush()

    session.execute(delete(Area).where(Area.city_id == city.id))
    for name, lat, lon in item["areas"]:
        session.add(
            Area(city_id=city.id, city_name=city.name, name=name, normalized_name=normalize_place_name(name), lat=lat, lon=lon)
        )
    city.area_count = len(item["areas"])
    city.areas_fetched = True
    return city


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed sample cities, areas and vendors.")
    parser.add_argument("--per-area", type=int, default=2, help="vendors per service and area")
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args()

    rng = random.Random(args.seed)
    created = 0
    with session_scope() as session:
        for item in CITIES:
            city = upsert_city(session, item)
            for service_id, (low, high) in SERVICE_PRICING.items():
                config = get_filter_service().get_service_config(service_id) or {}
                label = config.get("serviceName", service_id.replace("_", " ").title())
                for area_name, lat, lon in item["areas"]:
                    for index in range(args.per_area):
                        name = f"{rng.choice(NAME_PARTS)} {label} {area_name} {index + 1}"
                        vendor_id = vendor_id_from_name(f"{city.name}:{name}")
                        pricing_min = round(rng.uniform(low, (low + high) / 2), -2)
                        pricing_max = round(rng.uniform(pricing_min, high), -2)

                        session.execute(delete(Vendor).where(Vendor.vendor_id == vendor_id))
                        vendor = Vendor(
                            vendor_id=vendor_id,
                            name=name,
                            business_name=f"{name} Services",
                            contact_person=rng.choice(["Amit Sharma", "Priya Patel", "Rahul Verma", "Neha Joshi"]),
                            description=f"{label} for weddings, birthdays and corporate events in {area_name}, {city.name}.",
                            service_type=service_id,
                            city=city.name,
                            area=area_name,
                            address=f"{rng.randint(1, 200)}, Main Road, {area_name}",
                            lat=lat + rng.uniform(-0.01, 0.01),
                            lng=lon + rng.uniform(-0.01, 0.01),
                            pricing_min=pricing_min,
                            pricing_max=pricing_max,
                            pricing_average=round((pricing_min + pricing_max) / 2, -2),
                            rating=round(rng.uniform(3.0, 5.0), 1),
                            review_count=rng.randint(0, 400),
                            verified=rng.random() < 0.6,
                            is_featured=rng.random() < 0.15,
                            popularity_score=round(rng.uniform(0, 100), 1),
                            response_time=rng.choice(RESPONSE_TIMES),
                            search_keywords=list(config.get("keywords", [])),
                        )
                        vendor.filter_values = [
                            VendorFilterValue(filter_id=filter_id, value=value)
                            for filter_id, value in sample_filter_values(rng, service_id)
                        ]
                        session.add(vendor)
                        created += 1

    print(f"Seeded {len(CITIES)} cities and {created} vendors.")


if __name__ == "__main__":
    main()
