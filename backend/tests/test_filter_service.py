from eventsearch.services.filter_service import (
    SearchContext,
    build_search_payload,
    get_filter_service,
    validate_applied_filters,
)

UNIVERSAL_IDS = ["sort_by", "verified_only", "rating", "deals", "budget", "response_time"]


def test_photographer_query_detects_photography_filters():
    schema = get_filter_service().generate_filters(SearchContext(query="photographer"))
    assert schema.detected_service == "photography"
    assert "photography_type" in [item["id"] for item in schema.specific]
    assert [item["id"] for item in schema.universal] == UNIVERSAL_IDS


def test_service_budget_override_does_not_leak():
    service = get_filter_service()
    photography = service.generate_filters(SearchContext(query="photographer"))
    assert photography.find("budget")["min"] == 15000

    plain = service.generate_filters(SearchContext(query=""))
    budget = plain.find("budget")
    assert budget["min"] == 0
    assert budget["max"] == 1000000


def test_category_used_when_query_has_no_service():
    schema = get_filter_service().generate_filters(SearchContext(query="", category="catering"))
    assert schema.detected_service == "catering"


def test_hierarchy_capped_and_expanded_for_empty_query():
    schema = get_filter_service().generate_filters(SearchContext())
    categories = schema.hierarchy["categories"]
    assert 0 < len(categories) <= 3
    assert all(category["expanded"] for category in categories)
    for category in categories:
        for child in category["children"]:
            if child["id"].endswith("_services"):
                assert len(child["options"]) <= 10


def test_location_and_event_type_are_injected():
    schema = get_filter_service().generate_filters(
        SearchContext(query="photographer", event_type="wedding", city="Indore", area="Palasia")
    )
    assert [item["id"] for item in schema.specific[:2]] == ["location_city", "location_area"]
    assert all(item["locked"] for item in schema.specific[:2])
    event_type = schema.find("event_type")
    assert event_type["value"] == "wedding"


def test_area_without_city_is_not_injected():
    schema = get_filter_service().generate_filters(SearchContext(area="Palasia"))
    assert schema.find("location_area") is None


def test_validation_collects_errors():
    schema = get_filter_service().get_filters_for_service("photography")
    result = validate_applied_filters(
        {
            "mystery": "x",
            "team_size": {"min": 0, "max": 3},
            "photography_type": ["candid"],
            "verified_only": True,
        },
        schema,
    )
    assert result.valid is False
    assert {(error.filter_id, error.message) for error in result.errors} == {
        ("mystery", "Unknown filter"),
        ("team_size", "Range out of bounds"),
    }
    assert result.validated == {"photography_type": ["candid"], "verified_only": True}


def test_validation_passes_in_range_values():
    schema = get_filter_service().get_filters_for_service("photography")
    result = validate_applied_filters({"budget": {"min": 20000, "max": 80000}}, schema)
    assert result.valid
    assert result.errors == []


def test_unknown_service_returns_universal_only():
    schema = get_filter_service().get_filters_for_service("unknown")
    assert schema.specific == []
    assert schema.detected_service is None


def test_build_search_payload_drops_empty_filters():
    payload = build_search_payload(
        service_id="photography",
        city="Indore",
        budget={"min": None, "max": 50000},
        filters={"photography_type": ["candid"], "deals": False, "equipment": [], "language": ""},
    )
    assert payload["location"]["radius"] == 10
    assert payload["filters"] == {"photography_type": ["candid"]}
    assert payload["budget"] == {"min": 0, "max": 50000}
    assert "budget" not in build_search_payload(service_id="photography")


def test_non_numeric_range_bounds_are_reported_not_raised():
    schema = get_filter_service().get_filters_for_service("photography")
    result = validate_applied_filters(
        {"budget": {"min": "abc"}, "team_size": {"max": True}},
        schema,
    )
    assert result.valid is False
    assert {(error.filter_id, error.message) for error in result.errors} == {
        ("budget", "Invalid range"),
        ("team_size", "Invalid range"),
    }
    assert "budget" not in result.validated


def test_multiselect_accepts_single_value():
    schema = get_filter_service().get_filters_for_service("photography")
    result = validate_applied_filters({"photography_type": "candid"}, schema)
    assert result.valid
    assert result.validated == {"photography_type": ["candid"]}
