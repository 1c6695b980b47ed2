from __future__ import annotations

import json
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from uuid import UUID, uuid4

SEARCH_STAGES = ("text", "geo", "db", "tiering", "external")

_TRACE_CONTEXT: ContextVar["SearchTrace | None"] = ContextVar("search_trace", default=None)


def _round_or_none(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, 3)


@dataclass
class SearchTrace:
    request_id: UUID = field(default_factory=uuid4)
    path: str = ""
    method: str = "GET"
    request_start_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    query_text: str | None = None
    search_kind: str | None = None
    stage_times_ms: dict[str, float] = field(default_factory=dict)
    total_time_ms: float | None = None
    result_count: int | None = None
    total_matches: int | None = None
    _request_perf_counter_start: float = field(default_factory=perf_counter, repr=False)

    @property
    def search_active(self) -> bool:
        return self.search_kind is not None

    def mark_search(self, kind: str, query_text: str | None = None) -> None:
        self.search_kind = kind
        self.query_text = query_text.strip() if query_text else None

    def record_stage_time(self, stage: str, duration_ms: float) -> None:
        if stage not in SEARCH_STAGES:
            return
        self.stage_times_ms[stage] = self.stage_times_ms.get(stage, 0.0) + duration_ms

    def set_result_summary(self, result_count: int, total_matches: int | None = None) -> None:
        self.result_count = result_count
        self.total_matches = total_matches if total_matches is not None else result_count

    def finalize(self) -> None:
        if self.total_time_ms is None:
            self.total_time_ms = (perf_counter() - self._request_perf_counter_start) * 1000.0
        if self.search_active and self.result_count is None:
            self.result_count = 0

    def stage_time(self, stage: str) -> float | None:
        return _round_or_none(self.stage_times_ms.get(stage))

    def to_header_value(self) -> str:
        payload = {
            "request_id": str(self.request_id),
            "search": self.search_kind,
            "total_time_ms": _round_or_none(self.total_time_ms),
            "result_count": self.result_count,
            "total_matches": self.total_matches,
        }
        for stage in SEARCH_STAGES:
            payload[f"{stage}_time_ms"] = self.stage_time(stage)
        return json.dumps(payload, separators=(",", ":"))


def get_current_trace() -> SearchTrace | None:
    return _TRACE_CONTEXT.get()


def set_current_trace(trace: SearchTrace) -> Token:
    return _TRACE_CONTEXT.set(trace)


def reset_current_trace(token: Token) -> None:
    _TRACE_CONTEXT.reset(token)
