"""Domain error type and the handlers that turn errors into envelopes."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from videotube.schema.envelope import ErrorResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised by services with the HTTP status the caller should see."""

    def __init__(self, status_code: int, message: str = "Something went wrong", errors: Iterable[str] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = list(errors or [])


def error_response(status_code: int, message: str, errors: Iterable[str] | None = None) -> JSONResponse:
    """Render the failure envelope with a matching HTTP status."""

    body = ErrorResponse(status_code=status_code, message=message, errors=list(errors or []))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, exc.errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append(f"{field}: {error.get('msg', 'invalid value')}" if field else error.get("msg", "invalid value"))
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach envelope-producing handlers to the application."""

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
