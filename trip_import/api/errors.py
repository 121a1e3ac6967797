"""Error envelope rendering.

Every failure leaves the API as::

    {"error": {"code": ..., "message": ..., "requestId": ..., "details": ...}}
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from trip_import.shared import (
    ApiError,
    ConfigurationError,
    ErrorCode,
    ImportItemNotFound,
    InvalidImportState,
    TripImportError,
    UpstreamError,
)


def request_id_of(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def error_response(
    request: Request,
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    request_id = request_id_of(request)
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code.value,
                "message": message,
                "requestId": request_id,
                "details": jsonable_encoder(details) if details is not None else None,
            }
        },
        headers=headers,
    )


def success(data: Any) -> Dict[str, Any]:
    return {"data": data}


def to_api_error(exc: TripImportError) -> ApiError:
    """Translate a domain exception raised by a service."""
    if isinstance(exc, ConfigurationError):
        return ApiError(ErrorCode.MISCONFIGURED, str(exc))
    if isinstance(exc, UpstreamError):
        return ApiError(ErrorCode.UPSTREAM_ERROR, str(exc), details={"warnings": exc.warnings})
    if isinstance(exc, ImportItemNotFound):
        return ApiError(ErrorCode.BAD_REQUEST, str(exc), status_code=404)
    if isinstance(exc, InvalidImportState):
        return ApiError(ErrorCode.BAD_REQUEST, str(exc))
    return ApiError(ErrorCode.INTERNAL_ERROR, "Unexpected error while processing the request")


def _code_for_status(status_code: int) -> ErrorCode:
    if status_code in (401, 403):
        return ErrorCode.UNAUTHORIZED
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if status_code >= 500:
        return ErrorCode.INTERNAL_ERROR
    return ErrorCode.BAD_REQUEST


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code.value}: {exc.message}")
    return error_response(request, exc.code, exc.message, exc.status_code, exc.details)


async def domain_error_handler(request: Request, exc: TripImportError) -> JSONResponse:
    return await api_error_handler(request, to_api_error(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return error_response(request, ErrorCode.BAD_REQUEST, "Invalid request body", 400, {"errors": errors})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(request, _code_for_status(exc.status_code), str(exc.detail), exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # 🔒 Security: full trace stays in the logs, the client gets a generic message
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(
        request,
        ErrorCode.INTERNAL_ERROR,
        "Unexpected error while processing the request",
        500,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(TripImportError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
