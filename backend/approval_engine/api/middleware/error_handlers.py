"""
Error Handlers

Translate exceptions that escape the routes into the JSON error envelope.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from ...domain.errors import DomainError, ConflictError
from ...utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


def _error_response(status_code: int, code: str, message: str, details: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"error": {"code": code, "message": message, "details": details}}),
        headers={"X-Correlation-Id": get_correlation_id() or ""}
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """
    Handle domain errors raised outside the routes' own handling

    Conflicts are expected under concurrent voting and logged at info level.
    """
    level = logger.info if isinstance(exc, ConflictError) else logger.warning
    level(
        f"Domain error: {exc.error_code} - {exc.message}",
        extra={"status": exc.http_status}
    )
    return _error_response(exc.http_status, exc.error_code, exc.message, exc.details)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request bodies, paths and queries that fail schema validation"""
    errors = jsonable_encoder(exc.errors())
    logger.warning(
        f"Request validation failed: {request.method} {request.url.path}: {errors}"
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors; the stack trace goes to the error log"""
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        {"hint": "Check server logs for details"}
    )


def register_error_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
