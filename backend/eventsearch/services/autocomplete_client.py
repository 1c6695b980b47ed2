from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

SUGGESTIONS_PATH = "/api/search/suggestions"
DEFAULT_LIMIT = 12
FETCH_ERROR_MESSAGE = "Failed to fetch suggestions"


class AutocompleteError(Exception):
    pass


@dataclass
class _CachedSuggestions:
    items: list[dict[str, Any]]
    timestamp: float


def normalize_suggestion(item: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(item)
    normalized.setdefault("type", "service")
    normalized.setdefault("score", 0)
    if normalized.get("taxonomyId") is None and normalized.get("id") is not None:
        normalized["taxonomyId"] = normalized["id"]
    return normalized


class AutocompleteClient:
    """Async client for the suggestions endpoint with a small FIFO cache."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        cache_ttl_seconds: float | None = None,
        cache_size: int | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.autocomplete_timeout_seconds
        self.cache_ttl_seconds = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.autocomplete_cache_ttl_seconds
        )
        self.cache_size = cache_size if cache_size is not None else settings.autocomplete_cache_size
        self._http = http_client or httpx.AsyncClient(timeout=self.timeout_seconds)
        self._clock = clock
        self._cache: dict[str, _CachedSuggestions] = {}

    @staticmethod
    def cache_key(query: str, limit: int) -> str:
        return f"autocomplete:{query.strip().lower()}:{limit}"

    async def fetch(self, query: str, limit: int = DEFAULT_LIMIT) -> list[dict[str, Any]]:
        term = query.strip()
        if not term:
            return []

        key = self.cache_key(term, limit)
        cached = self._cache.get(key)
        if cached is not None:
            if self._clock() - cached.timestamp <= self.cache_ttl_seconds:
                return [dict(item) for item in cached.items]
            del self._cache[key]

        try:
            response = await self._http.get(
                f"{self.base_url}{SUGGESTIONS_PATH}",
                params={"q": term, "limit": limit},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("autocomplete_fetch_failed query=%r error=%s", term, exc)
            raise AutocompleteError(FETCH_ERROR_MESSAGE) from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        items = [normalize_suggestion(item) for item in data or [] if isinstance(item, dict)]
        self._store(key, items)
        return [dict(item) for item in items]

    def _store(self, key: str, items: list[dict[str, Any]]) -> None:
        if self.cache_size <= 0:
            return
        while len(self._cache) >= self.cache_size:
            self._cache.pop(next(iter(self._cache)))
        self._cache[key] = _CachedSuggestions(items=[dict(item) for item in items], timestamp=self._clock())

    async def aclose(self) -> None:
        await self._http.aclose()


@dataclass
class AutocompleteState:
    query: str
    suggestions: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    sequence: int = 0


class DebouncedAutocomplete:
    """Debounces keystrokes and applies only the latest query's result.

    Each ``submit`` cancels the previous in-flight lookup. A result is applied
    only if its sequence number is still the newest when it completes;
    superseded calls return ``None``.
    """

    def __init__(
        self,
        client: AutocompleteClient,
        *,
        debounce_ms: int | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.client = client
        self.debounce_seconds = (debounce_ms if debounce_ms is not None else settings.autocomplete_debounce_ms) / 1000
        self.limit = limit
        self.state: AutocompleteState | None = None
        self._sequence = 0
        self._inflight: asyncio.Task | None = None

    async def _lookup(self, query: str) -> list[dict[str, Any]]:
        await asyncio.sleep(self.debounce_seconds)
        return await self.client.fetch(query, self.limit)

    async def submit(self, query: str) -> AutocompleteState | None:
        self._sequence += 1
        sequence = self._sequence
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

        task = asyncio.create_task(self._lookup(query))
        self._inflight = task
        error = None
        try:
            suggestions = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            suggestions = []
        except AutocompleteError as exc:
            suggestions = []
            error = str(exc)

        if sequence != self._sequence:
            logger.debug("autocomplete_stale_result query=%r sequence=%s latest=%s", query, sequence, self._sequence)
            return None

        self.state = AutocompleteState(query=query, suggestions=suggestions, error=error, sequence=sequence)
        return self.state
