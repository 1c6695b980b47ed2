from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable

import httpx

from ..config import settings
from ..telemetry import timed_stage

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
FALLBACK_LOCATIONS_PATH = DATA_DIR / "fallback_locations.json"

CITIES_CACHE_KEY = "cities_india"
MAX_AREAS_PER_CITY = 30

CITIES_QUERY = """
[out:json][timeout:8];
area["ISO3166-1"="IN"][admin_level=2]->.india;
(
  node["place"="city"]["population"](area.india);
  relation["place"="city"]["population"](area.india);
);
out tags;
"""

AREAS_QUERY_TEMPLATE = """
[out:json][timeout:8];
(
  relation["name"="{city}"]["place"~"city|town"]["admin_level"~"[4-8]"];
  area["name"="{city}"]["place"~"city|town"];
)->.city;
(
  node["place"~"suburb|neighbourhood|locality"](area.city);
  way["place"~"suburb|neighbourhood|locality"](area.city);
);
out tags {limit};
"""

Place = dict[str, str]


class OverpassResponseError(Exception):
    pass


@dataclass
class CacheEntry:
    data: list[Place]
    timestamp: float


class FallbackLocations:
    """Static city/area lists served when the Overpass API is unreachable."""

    def __init__(self, path: Path | None = None) -> None:
        payload = json.loads((path or FALLBACK_LOCATIONS_PATH).read_text(encoding="utf-8"))
        self.aliases: dict[str, str] = {key.lower(): value for key, value in payload.get("aliases", {}).items()}
        self._cities: list[str] = list(payload.get("cities", []))
        self._areas: dict[str, list[str]] = {key.lower(): value for key, value in payload.get("areas", {}).items()}

    def normalize_city_name(self, city_name: str | None) -> str:
        if not city_name:
            return ""
        normalized = " ".join(city_name.lower().strip().split())
        return self.aliases.get(normalized, normalized)

    def cities(self) -> list[Place]:
        return [{"name": name} for name in self._cities]

    def areas_for(self, city_name: str) -> list[Place]:
        return [{"name": name} for name in self._areas.get(self.normalize_city_name(city_name), [])]

    def known_cities(self) -> list[str]:
        return list(self._areas)


@lru_cache(maxsize=1)
def get_fallback_locations() -> FallbackLocations:
    return FallbackLocations()


def _escape_overpass_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _element_names(elements: list[dict[str, Any]]) -> list[str]:
    names: list[str] = []
    seen: set[str] = set()
    for element in elements:
        name = (element.get("tags") or {}).get("name")
        if not isinstance(name, str) or not name.strip() or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


class OverpassClient:
    """Throttled, cached client for city and area lookups against OSM Overpass.

    All mutable state (cache, last request time, mirror index) lives on the
    instance. Outbound requests are serialized by a lock and spaced at least
    ``min_interval_seconds`` apart. Failures never propagate: callers get
    cached or static fallback data instead.
    """

    def __init__(
        self,
        *,
        urls: list[str] | None = None,
        timeout_seconds: float | None = None,
        min_interval_seconds: float | None = None,
        cache_ttl_seconds: float | None = None,
        http_client: httpx.Client | None = None,
        fallback: FallbackLocations | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.urls = list(urls or settings.overpass_urls)
        if not self.urls:
            raise ValueError("At least one Overpass URL is required")
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.overpass_timeout_seconds
        self.min_interval_seconds = (
            min_interval_seconds if min_interval_seconds is not None else settings.overpass_min_interval_seconds
        )
        self.cache_ttl_seconds = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.overpass_cache_ttl_seconds
        )
        self.fallback = fallback or get_fallback_locations()
        self._http = http_client or httpx.Client(
            timeout=self.timeout_seconds,
            headers={"User-Agent": "eventsearch/0.1 (+vendor-location-lookup)"},
        )
        self._clock = clock
        self._sleep = sleep

        self._cache: dict[str, CacheEntry] = {}
        self._last_request_at: float | None = None
        self._url_index = 0
        self._lock = Lock()

    @property
    def current_url(self) -> str:
        return self.urls[self._url_index]

    def normalize_city_name(self, city_name: str | None) -> str:
        return self.fallback.normalize_city_name(city_name)

    def areas_cache_key(self, city_name: str) -> str:
        return f"areas_{self.normalize_city_name(city_name)}"

    def fetch_cities(self) -> list[Place]:
        return self._cached_or_fetch(
            CITIES_CACHE_KEY,
            CITIES_QUERY,
            parse=lambda elements: [{"name": name} for name in sorted(_element_names(elements))],
            fallback=self.fallback.cities,
            cache_fallback=False,
        )

    def fetch_areas_for_city(self, city_name: str | None) -> list[Place]:
        if not city_name or not city_name.strip():
            return []

        query = AREAS_QUERY_TEMPLATE.format(
            city=_escape_overpass_string(city_name.strip()),
            limit=MAX_AREAS_PER_CITY,
        )
        return self._cached_or_fetch(
            self.areas_cache_key(city_name),
            query,
            parse=lambda elements: [
                {"name": name} for name in sorted(_element_names(elements)[:MAX_AREAS_PER_CITY])
            ],
            fallback=lambda: self.fallback.areas_for(city_name),
            cache_fallback=True,
        )

    def cache_stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "size": len(self._cache),
            "keys": sorted(self._cache),
            "oldest_age_seconds": max((now - entry.timestamp for entry in self._cache.values()), default=None),
            "current_url": self.current_url,
        }

    def close(self) -> None:
        self._http.close()

    def _cached_or_fetch(
        self,
        key: str,
        query: str,
        *,
        parse: Callable[[list[dict[str, Any]]], list[Place]],
        fallback: Callable[[], list[Place]],
        cache_fallback: bool,
    ) -> list[Place]:
        cached = self._get_cached(key)
        if cached is not None:
            return cached

        with self._lock:
            # Another caller may have filled the entry while this one waited.
            cached = self._get_cached(key)
            if cached is not None:
                return cached

            try:
                with timed_stage("external"):
                    self._throttle()
                    elements = self._post(query)
            except (httpx.HTTPError, OverpassResponseError) as exc:
                failed_url = self.current_url
                self._rotate_mirror()
                logger.warning("overpass_request_failed key=%s url=%s error=%s", key, failed_url, exc)
                return self._use_fallback(key, fallback, cache_fallback)

            places = parse(elements)
            if places:
                self._set_cache(key, places)
                logger.info("overpass_fetch key=%s results=%s", key, len(places))
                return [dict(place) for place in places]

            logger.info("overpass_empty key=%s", key)
            return self._use_fallback(key, fallback, cache_fallback)

    def _use_fallback(self, key: str, fallback: Callable[[], list[Place]], cache_fallback: bool) -> list[Place]:
        places = fallback()
        if cache_fallback and places:
            self._set_cache(key, places)
        return places

    def _throttle(self) -> None:
        if self._last_request_at is not None:
            wait_seconds = self.min_interval_seconds - (self._clock() - self._last_request_at)
            if wait_seconds > 0:
                self._sleep(wait_seconds)
        self._last_request_at = self._clock()

    def _post(self, query: str) -> list[dict[str, Any]]:
        response = self._http.post(self.current_url, data={"data": query}, timeout=self.timeout_seconds)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise OverpassResponseError("Overpass returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise OverpassResponseError("Overpass returned an unexpected payload")
        elements = payload.get("elements")
        if not isinstance(elements, list):
            return []
        return elements

    def _rotate_mirror(self) -> None:
        self._url_index = (self._url_index + 1) % len(self.urls)

    def _get_cached(self, key: str) -> list[Place] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.cache_ttl_seconds:
            self._cache.pop(key, None)
            return None
        return [dict(place) for place in entry.data]

    def _set_cache(self, key: str, places: list[Place]) -> None:
        self._cache[key] = CacheEntry(data=[dict(place) for place in places], timestamp=self._clock())


@lru_cache(maxsize=1)
def get_overpass_client() -> OverpassClient:
    return OverpassClient()
