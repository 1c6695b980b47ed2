from .instrumentation import StageTimer, instrument_stage, timed_stage
from .trace import SEARCH_STAGES, SearchTrace, get_current_trace, reset_current_trace, set_current_trace

__all__ = [
    "SEARCH_STAGES",
    "SearchTrace",
    "StageTimer",
    "get_current_trace",
    "instrument_stage",
    "reset_current_trace",
    "set_current_trace",
    "timed_stage",
]
