from __future__ import annotations

import logging
from functools import wraps
from inspect import iscoroutinefunction
from time import perf_counter
from typing import Callable, ParamSpec, TypeVar

from .trace import SEARCH_STAGES, get_current_trace

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)

SLOW_STAGE_MS = 500.0


class StageTimer:
    """Context manager adding its wall time to ``stage`` on the request's trace."""

    def __init__(self, stage: str) -> None:
        if stage not in SEARCH_STAGES:
            raise ValueError(f"Unknown search stage: {stage}")
        self.stage = stage
        self.elapsed_ms: float | None = None
        self._started = 0.0

    def __enter__(self) -> StageTimer:
        self._started = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed_ms = (perf_counter() - self._started) * 1000.0
        trace = get_current_trace()
        if trace is not None:
            trace.record_stage_time(self.stage, self.elapsed_ms)
        if self.elapsed_ms >= SLOW_STAGE_MS:
            logger.debug("slow_search_stage stage=%s elapsed_ms=%.1f", self.stage, self.elapsed_ms)


def timed_stage(stage: str) -> StageTimer:
    return StageTimer(stage)


def instrument_stage(stage: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    StageTimer(stage)

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        if iscoroutinefunction(func):

            @wraps(func)
            async def timed_coroutine(*args: P.args, **kwargs: P.kwargs):  # type: ignore[misc]
                with StageTimer(stage):
                    return await func(*args, **kwargs)

            return timed_coroutine  # type: ignore[return-value]

        @wraps(func)
        def timed_call(*args: P.args, **kwargs: P.kwargs) -> R:
            with StageTimer(stage):
                return func(*args, **kwargs)

        return timed_call

    return decorator
