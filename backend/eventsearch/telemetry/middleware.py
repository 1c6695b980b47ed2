from __future__ import annotations

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ..config import settings
from .logging_utils import PERF_LEVEL_NUM, PERF_LOGGER_NAME
from .trace import SEARCH_STAGES, SearchTrace, reset_current_trace, set_current_trace

logger = logging.getLogger(__name__)
perf_logger = logging.getLogger(PERF_LOGGER_NAME)

API_PREFIX = "/api/"


def server_timing(trace: SearchTrace) -> str:
    """``Server-Timing`` value with one metric per recorded stage plus the total."""
    metrics = [f"{stage};dur={trace.stage_time(stage)}" for stage in SEARCH_STAGES if stage in trace.stage_times_ms]
    if trace.total_time_ms is not None:
        metrics.append(f"total;dur={round(trace.total_time_ms, 3)}")
    return ", ".join(metrics)


class TelemetryMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace = SearchTrace(path=request.url.path, method=request.method)
        request.state.request_id = str(trace.request_id)
        token = set_current_trace(trace)
        try:
            response = await call_next(request)
        except Exception:
            trace.finalize()
            self._log_search(trace, 500)
            raise
        finally:
            reset_current_trace(token)

        trace.finalize()
        if request.url.path.startswith(API_PREFIX):
            response.headers["X-Request-Id"] = str(trace.request_id)
            if trace.search_active:
                response.headers["X-Search-Performance"] = trace.to_header_value()
                response.headers["Server-Timing"] = server_timing(trace)
        self._log_search(trace, response.status_code)
        return response

    @staticmethod
    def _log_search(trace: SearchTrace, status_code: int) -> None:
        if not settings.telemetry_enabled or not trace.search_active:
            return
        if status_code >= 500:
            logger.warning("search_failed kind=%s path=%s status=%s", trace.search_kind, trace.path, status_code)

        perf_logger.log(
            PERF_LEVEL_NUM,
            "search_trace kind=%s status=%s query=%r stages=%s total_ms=%s results=%s total=%s",
            trace.search_kind,
            status_code,
            trace.query_text,
            {stage: trace.stage_time(stage) for stage in SEARCH_STAGES if stage in trace.stage_times_ms},
            trace.total_time_ms and round(trace.total_time_ms, 3),
            trace.result_count,
            trace.total_matches,
            extra={"request_id": str(trace.request_id)},
        )
