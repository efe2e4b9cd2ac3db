"""
sochma/core/errors.py

Purpose: HTTP error mapping

- Every error leaves the API in the ErrorResponse shape (error, code, details)
- Domain errors keep their own status code
- Raw messages of unexpected errors are hidden in production
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from sochma.core.config import settings
from sochma.core.exceptions import ServiceUnavailable, SochmaError
from sochma.core.logging import get_logger
from sochma.schemas.response import ErrorResponse

logger = get_logger(__name__)

# Seconds a client should wait before calling again after a 503
RETRY_AFTER_SECONDS = 5


def error_response(
    status_code: int,
    error: str,
    code: str,
    details: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, code=code, details=details).model_dump(),
        headers=headers
    )


def add_exception_handlers(app: FastAPI):
    """
    Registers exception handlers with the FastAPI app.
    """
    @app.exception_handler(SochmaError)
    async def sochma_exception_handler(request: Request, exc: SochmaError):
        if exc.status_code >= 500:
            logger.error(f"❌ {exc.code} on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")

        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if isinstance(exc, ServiceUnavailable) else None
        return error_response(exc.status_code, exc.message, exc.code, exc.details, headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handles standard HTTP exceptions (404, 405, ...)
        """
        return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR", headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Handles Pydantic validation errors.
        """
        return error_response(422, "Input validation failed", "VALIDATION_ERROR", jsonable_errors(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all for unhandled exceptions.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else "unknown"
            },
            exc_info=True
        )

        message = "An internal error occurred. Please try again later." if settings.is_production else str(exc)
        return error_response(500, message, "INTERNAL_ERROR")


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that JSONResponse cannot encode
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]
