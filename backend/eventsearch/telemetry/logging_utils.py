from __future__ import annotations

import logging
import logging.config

from .trace import get_current_trace

PERF_LEVEL_NUM = 25
PERF_LEVEL_NAME = "PERF"
PERF_LOGGER_NAME = "eventsearch.perf"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


class RequestIdFilter(logging.Filter):
    """Stamps each record with the id of the request being served, or ``-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            trace = get_current_trace()
            record.request_id = str(trace.request_id) if trace is not None else "-"
        return True


def level_number(name: str | None, default: int) -> int:
    if not name:
        return default
    name = name.strip().upper()
    if name == PERF_LEVEL_NAME:
        return PERF_LEVEL_NUM
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else default


def configure_logging(app_level: str, perf_level: str) -> None:
    logging.addLevelName(PERF_LEVEL_NUM, PERF_LEVEL_NAME)
    app_level_num = level_number(app_level, logging.INFO)
    quiet_level = max(app_level_num, logging.WARNING)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_id": {"()": RequestIdFilter}},
            "formatters": {"default": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["request_id"],
                }
            },
            "root": {"level": app_level_num, "handlers": ["console"]},
            "loggers": {
                PERF_LOGGER_NAME: {"level": level_number(perf_level, PERF_LEVEL_NUM)},
                **{name: {"level": quiet_level} for name in QUIET_LOGGERS},
            },
        }
    )
