from eventsearch.services.distance_service import (
    bounding_box,
    display_distance_km,
    format_distance,
    haversine_km,
    is_valid_coordinate,
)


def test_haversine_zero_distance():
    assert haversine_km(19.07, 72.87, 19.07, 72.87) == 0


def test_haversine_mumbai_to_pune():
    distance = haversine_km(19.0760, 72.8777, 18.5204, 73.8567)
    assert 115 < distance < 125


def test_display_distance_rounds_to_two_places():
    distance = display_distance_km(19.1136, 72.8697, 19.1176, 72.9060)
    assert distance == round(distance, 2)
    assert 3 < distance < 4.5


def test_format_distance_switches_to_metres_below_one_km():
    assert format_distance(0.45) == "450m"
    assert format_distance(3.456) == "3.5km"


def test_is_valid_coordinate_bounds():
    assert is_valid_coordinate(19.07, 72.87)
    assert not is_valid_coordinate(91.0, 72.87)
    assert not is_valid_coordinate(19.07, -181.0)
    assert not is_valid_coordinate(None, 72.87)


def test_bounding_box_contains_radius():
    box = bounding_box(19.07, 72.87, 10)
    assert box.min_lat < 19.07 < box.max_lat
    assert box.min_lng < 72.87 < box.max_lng
    assert haversine_km(19.07, 72.87, box.max_lat, 72.87) >= 9.9
