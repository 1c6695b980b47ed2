import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .schemas import ErrorDetail, ErrorResponse
from .services.search_service import SearchValidationError

logger = logging.getLogger(__name__)

STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def api_error(status_code: int, code: str, message: str, details: Any | None = None) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message, "details": details})


def error_response(status_code: int, code: str, message: str, details: Any | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump(by_alias=True, exclude_none=True)),
    )


async def search_validation_handler(request: Request, exc: SearchValidationError) -> JSONResponse:
    return error_response(400, "INVALID_SEARCH", str(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(422, "VALIDATION_ERROR", "Request validation failed", exc.errors())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return error_response(
            exc.status_code,
            exc.detail.get("code") or STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
            exc.detail.get("message") or "Request failed",
            exc.detail.get("details"),
        )
    return error_response(exc.status_code, STATUS_CODES.get(exc.status_code, "HTTP_ERROR"), str(exc.detail))


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database_error path=%s", request.url.path)
    return error_response(503, "SEARCH_UNAVAILABLE", "Search is temporarily unavailable")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SearchValidationError, search_validation_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
