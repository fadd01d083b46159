"""
Error handler middleware.

Maps the application error taxonomy to consistent JSON responses:
    {"error": <message>, "code": <machine code>, "correlation_id": ..., "details": ...}
Server-side failures (status >= 500) are logged with stack traces and
returned without internal detail.
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pest_booking.lib.errors import AppException, ValidationError
from pest_booking.lib.logging import get_logger

logger = get_logger(__name__)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handler for application exceptions.

    Returns consistent error response with correlation ID.
    """
    correlation_id = _correlation_id(request)

    if exc.status_code >= 500:
        logger.error(
            f"Application error: {exc.message}",
            extra={
                "correlation_id": correlation_id,
                "status_code": exc.status_code,
                "code": exc.code,
                "path": request.url.path,
                "method": request.method,
            },
            exc_info=exc,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "Internal server error",
                "code": exc.code,
                "correlation_id": correlation_id,
            },
        )

    logger.warning(
        f"Application error: {exc.message}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "code": exc.code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )

    response_content = {
        "error": exc.message,
        "code": exc.code,
        "correlation_id": correlation_id,
    }
    if exc.details:
        response_content["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=response_content,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handler for request validation errors.

    Renders them exactly like a service-level ValidationError so a UI can
    highlight every offending field regardless of where it was caught.
    """
    return await app_exception_handler(request, ValidationError.from_pydantic(exc.errors()))


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handler for Starlette HTTP exceptions (unknown routes, bad methods).
    """
    correlation_id = _correlation_id(request)

    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "code": "http_error",
            "correlation_id": correlation_id,
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for unhandled exceptions.

    Logs full stack trace and returns generic error message.
    """
    correlation_id = _correlation_id(request)

    logger.log(
        logging.ERROR,
        f"Unhandled exception: {exc}",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "code": "internal_error",
            "correlation_id": correlation_id,
        },
    )
