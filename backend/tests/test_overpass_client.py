from __future__ import annotations

import threading
import time

import httpx

from eventsearch.services.overpass_client import OverpassClient

URLS = ["https://overpass.test/a", "https://overpass.test/b"]


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_client(handler, clock: FakeClock | None = None) -> tuple[OverpassClient, FakeClock]:
    clock = clock or FakeClock()
    client = OverpassClient(
        urls=URLS,
        timeout_seconds=12,
        min_interval_seconds=1.5,
        cache_ttl_seconds=1800,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        clock=clock,
        sleep=clock.sleep,
    )
    return client, clock


def areas_payload(*names: str) -> dict:
    return {"elements": [{"type": "node", "tags": {"name": name}} for name in names]}


def test_areas_fetched_once_within_ttl():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=areas_payload("Vijay Nagar", "Palasia"))

    client, _ = make_client(handler)
    first = client.fetch_areas_for_city("Indore")
    second = client.fetch_areas_for_city("Indore")

    assert first == second == [{"name": "Palasia"}, {"name": "Vijay Nagar"}]
    assert len(calls) == 1


def test_cache_entry_expires_after_ttl():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=areas_payload("Palasia"))

    client, clock = make_client(handler)
    client.fetch_areas_for_city("Indore")

    clock.now += 1800
    client.fetch_areas_for_city("Indore")
    assert len(calls) == 1

    clock.now += 1
    client.fetch_areas_for_city("Indore")
    assert len(calls) == 2


def test_alias_cities_share_cache_key_and_fallback():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    client, _ = make_client(handler)
    assert client.areas_cache_key("Bengaluru") == client.areas_cache_key("bangalore") == "areas_bangalore"
    areas = client.fetch_areas_for_city("Bengaluru")
    assert {"name": "Koramangala"} in areas
    assert client.fetch_areas_for_city("bangalore") == areas


def test_cities_fall_back_to_static_list_on_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    client, _ = make_client(handler)
    cities = client.fetch_cities()

    assert len(cities) == 50
    assert cities[0] == {"name": "Mumbai"}
    assert client.current_url == URLS[1]


def test_server_error_rotates_mirror_for_next_call():
    seen_urls = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_urls.append(str(request.url))
        return httpx.Response(504, text="gateway timeout")

    client, _ = make_client(handler)
    client.fetch_cities()
    client.fetch_cities()

    assert seen_urls == URLS


def test_empty_response_uses_cached_fallback_areas():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"elements": []})

    client, _ = make_client(handler)
    areas = client.fetch_areas_for_city("Indore")

    assert {"name": "Vijay Nagar"} in areas
    assert client.fetch_areas_for_city("indore") == areas
    assert len(calls) == 1


def test_non_json_body_falls_back():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>rate limited</html>")

    client, _ = make_client(handler)
    assert client.fetch_cities()[0] == {"name": "Mumbai"}


def test_requests_are_spaced_by_min_interval():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=areas_payload("Somewhere"))

    client, clock = make_client(handler)
    client.fetch_areas_for_city("Indore")
    client.fetch_areas_for_city("Jaipur")

    assert clock.sleeps == [1.5]


def test_blank_city_returns_empty_without_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client, _ = make_client(handler)
    assert client.fetch_areas_for_city("   ") == []


def test_cached_results_are_copies():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=areas_payload("Palasia"))

    client, _ = make_client(handler)
    client.fetch_areas_for_city("Indore")[0]["name"] = "mutated"
    assert client.fetch_areas_for_city("Indore") == [{"name": "Palasia"}]


def test_concurrent_lookups_are_serialized_and_share_alias_entries():
    started: list[float] = []
    in_flight = 0
    overlapped = False
    guard = threading.Lock()

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, overlapped
        with guard:
            started.append(time.monotonic())
            in_flight += 1
            overlapped = overlapped or in_flight > 1
        time.sleep(0.01)
        with guard:
            in_flight -= 1
        return httpx.Response(200, json=areas_payload("Central"))

    client = OverpassClient(
        urls=URLS,
        timeout_seconds=5,
        min_interval_seconds=0.05,
        cache_ttl_seconds=1800,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    barrier = threading.Barrier(4)
    results: dict[str, list] = {}

    def lookup(city: str) -> None:
        barrier.wait()
        results[city] = client.fetch_areas_for_city(city)

    threads = [threading.Thread(target=lookup, args=(city,)) for city in ("Indore", "indore", "Pune", "Jaipur")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(started) == 3
    assert not overlapped
    assert all(later - earlier >= 0.04 for earlier, later in zip(started, started[1:]))
    assert results["Indore"] == results["indore"] == [{"name": "Central"}]
    assert client.cache_stats()["keys"] == ["areas_indore", "areas_jaipur", "areas_pune"]
