from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .errors import register_exception_handlers
from .routes.dynamic import router as dynamic_router
from .routes.filters import router as filters_router
from .routes.locations import router as locations_router
from .routes.search import router as search_router
from .schemas import HealthResponse
from .telemetry.logging_utils import configure_logging
from .telemetry.middleware import TelemetryMiddleware

configure_logging(settings.log_level, settings.perf_log_level)
app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "X-Search-Performance", "Server-Timing"],
)
app.add_middleware(TelemetryMiddleware)
register_exception_handlers(app)

app.include_router(search_router, prefix="/api")
app.include_router(filters_router, prefix="/api")
app.include_router(locations_router, prefix="/api")
app.include_router(dynamic_router, prefix="/api")


@app.get("/health", response_model=HealthResponse)
def healthcheck(db: Session = Depends(get_db)) -> HealthResponse:
    db.execute(text("SELECT 1"))
    return HealthResponse(status="ok")
