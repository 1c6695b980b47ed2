from __future__ import annotations

import pytest
from sqlalchemy import select

from eventsearch.models import Area
from eventsearch.schemas import BudgetInput, GeoPoint, LocationInput, Pricing, UnifiedSearchRequest, VendorResult
from eventsearch.services.search_service import SearchValidationError
from eventsearch.services.tier_service import group_vendors_by_tier, tiered_search

ANDHERI = (19.1136, 72.8697)
POWAI = (19.1176, 72.9060)
BANDRA = (19.0596, 72.8295)
THANE = (19.2183, 72.9781)


def result(vendor_id: str, tier: str | None) -> VendorResult:
    return VendorResult(
        id=1,
        vendor_id=vendor_id,
        name=vendor_id,
        service_type="photography",
        city="Mumbai",
        location=GeoPoint(coordinates=[72.8, 19.1]),
        pricing=Pricing(min=0, max=1),
        rating=4.0,
        review_count=0,
        verified=False,
        is_featured=False,
        response_time="within_24hr",
        popularity_score=0,
        match_tier=tier,
    )


def test_grouping_follows_priority_not_input_order():
    groups = group_vendors_by_tier(
        [
            result("a", "adjacent_city"),
            result("b", None),
            result("c", "exact_area"),
            result("d", "same_city"),
            result("e", "exact_area"),
        ]
    )

    assert [group.tier for group in groups] == ["exact_area", "same_city", "adjacent_city", "all"]
    assert [group.priority for group in groups] == [1, 3, 4, 5]
    assert [vendor.vendor_id for vendor in groups[0].vendors] == ["c", "e"]
    assert groups[0].title == "Same Area Vendors"
    assert groups[-1].title == "All Results"


def test_unknown_tier_lands_in_all_bucket():
    groups = group_vendors_by_tier([result("x", "galaxy")])
    assert [group.tier for group in groups] == ["all"]


def test_grouping_empty_input():
    assert group_vendors_by_tier([]) == []


@pytest.fixture
def mumbai(make_city):
    return make_city(
        "Mumbai",
        19.0760,
        72.8777,
        population=12442373,
        areas=[("Andheri", *ANDHERI), ("Bandra", *BANDRA), ("Powai", *POWAI)],
    )


def test_unified_search_assigns_tiers(session, make_vendor, mumbai):
    make_vendor(vendor_id="andheri-1", rating=4.1)
    make_vendor(vendor_id="andheri-2", rating=4.7)
    make_vendor(vendor_id="powai", area="Powai", lat=POWAI[0], lng=POWAI[1])
    make_vendor(vendor_id="bandra", area="Bandra", lat=BANDRA[0], lng=BANDRA[1])
    make_vendor(vendor_id="thane", city="Thane", area="Naupada", lat=THANE[0], lng=THANE[1])
    make_vendor(vendor_id="other-service", service_type="catering")

    page = tiered_search.search(
        session,
        UnifiedSearchRequest(service_type="photography", location=LocationInput(city="Mumbai", area="Andheri")),
    )

    assert [(r.vendor_id, r.match_tier) for r in page.results] == [
        ("andheri-2", "exact_area"),
        ("andheri-1", "exact_area"),
        ("powai", "nearby"),
        ("bandra", "same_city"),
        ("thane", "adjacent_city"),
    ]
    assert page.tier_breakdown == {"exact_area": 2, "nearby": 1, "same_city": 1, "adjacent_city": 1, "all": 0}
    assert page.search_location.source == "area"
    assert page.search_location.latitude == ANDHERI[0]
    assert page.results[2].distance is not None
    assert page.total == 5


def test_adjacent_cities_skipped_when_enough_results(session, make_vendor, mumbai):
    for index in range(5):
        make_vendor(vendor_id=f"andheri-{index}")
    make_vendor(vendor_id="thane", city="Thane", lat=THANE[0], lng=THANE[1])

    page = tiered_search.search(session, UnifiedSearchRequest(location=LocationInput(city="Mumbai", area="Andheri")))

    assert page.tier_breakdown["adjacent_city"] == 0
    assert "thane" not in [r.vendor_id for r in page.results]


def test_same_city_tier_uses_flexible_budget(session, make_vendor, mumbai):
    make_vendor(vendor_id="in-budget", pricing_min=20000, pricing_max=45000)
    make_vendor(vendor_id="slightly-over", pricing_min=58000, pricing_max=80000)
    make_vendor(vendor_id="far-over", pricing_min=90000, pricing_max=150000)

    page = tiered_search.search(
        session,
        UnifiedSearchRequest(
            location=LocationInput(city="Mumbai", area="Andheri"),
            budget=BudgetInput(min=10000, max=50000),
        ),
    )

    assert [(r.vendor_id, r.match_tier) for r in page.results] == [
        ("in-budget", "exact_area"),
        ("slightly-over", "same_city"),
    ]


def test_unknown_location_falls_back_to_all(session, make_vendor):
    make_vendor(vendor_id="photo-1", rating=4.9)
    make_vendor(vendor_id="photo-2", rating=4.2)
    make_vendor(vendor_id="caterer", service_type="catering")

    page = tiered_search.search(
        session,
        UnifiedSearchRequest(service_type="photography", location=LocationInput(city="Atlantis")),
    )

    assert [(r.vendor_id, r.match_tier) for r in page.results] == [("photo-1", "all"), ("photo-2", "all")]
    assert page.search_location.source == "city_name"


def test_coordinates_take_precedence_and_groups_are_returned(session, make_vendor, mumbai):
    make_vendor(vendor_id="powai", area="Powai", lat=POWAI[0], lng=POWAI[1])
    make_vendor(vendor_id="bandra", area="Bandra", lat=BANDRA[0], lng=BANDRA[1])

    page = tiered_search.search(
        session,
        UnifiedSearchRequest(
            location=LocationInput(latitude=POWAI[0], longitude=POWAI[1], radius=2),
            group_by_tier=True,
        ),
    )

    assert page.search_location.source == "coordinates"
    assert [group.tier for group in page.groups] == ["nearby", "adjacent_city"]
    assert page.results[0].vendor_id == "powai"


def test_area_id_resolves_location(session, make_vendor, mumbai):
    make_vendor(vendor_id="powai", area="Powai", lat=POWAI[0], lng=POWAI[1])
    powai_area = session.execute(select(Area).where(Area.name == "Powai")).scalar_one()

    page = tiered_search.search(session, UnifiedSearchRequest(area_id=powai_area.id))

    assert page.search_location.source == "area_id"
    assert page.search_location.city == "Mumbai"
    assert [(r.vendor_id, r.match_tier) for r in page.results] == [("powai", "exact_area")]


def test_unknown_area_id_is_rejected(session):
    with pytest.raises(SearchValidationError):
        tiered_search.search(session, UnifiedSearchRequest(area_id=999))


def test_unified_pagination(session, make_vendor, mumbai):
    for index in range(7):
        make_vendor(vendor_id=f"andheri-{index}")

    page = tiered_search.search(
        session,
        UnifiedSearchRequest(location=LocationInput(city="Mumbai", area="Andheri"), page=2, limit=5),
    )

    assert page.total == 7
    assert len(page.results) == 2
    assert page.total_pages == 2
    assert page.has_prev_page and not page.has_next_page
