"""Custom exception handlers for FastAPI application.

Converts domain exceptions into HTTP responses with proper status codes, so they never
leak to clients as 500s with stack traces.
"""

import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from goodbai.domain.exceptions import (
    AudioUnavailable,
    AuthExpired,
    ConfigurationError,
    DomainException,
    HostNotAllowed,
    InvalidAudioUrl,
    RateLimited,
    ScanNotFound,
    UpstreamHTTPError,
)

logger = logging.getLogger(__name__)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert bytes in pydantic error dicts to str so they are JSON serializable."""

    def _sanitize_value(value: Any) -> Any:
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value.decode("latin-1")
        elif isinstance(value, dict):
            return {k: _sanitize_value(v) for k, v in value.items()}
        elif isinstance(value, Exception):
            return str(value)
        elif isinstance(value, list | tuple):
            return [_sanitize_value(item) for item in value]
        return value

    return [_sanitize_value(error) for error in errors]


# Starlette picks the handler by walking the exception MRO, so these win over the
# DomainException fallback registered below.
_STATUS_BY_EXCEPTION: dict[type[DomainException], int] = {
    InvalidAudioUrl: status.HTTP_400_BAD_REQUEST,
    AuthExpired: status.HTTP_401_UNAUTHORIZED,
    HostNotAllowed: status.HTTP_403_FORBIDDEN,
    ScanNotFound: status.HTTP_404_NOT_FOUND,
    RateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
    UpstreamHTTPError: status.HTTP_502_BAD_GATEWAY,
    AudioUnavailable: status.HTTP_502_BAD_GATEWAY,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for domain exceptions and request validation errors."""

    def _domain_handler(
        status_code: int,
    ) -> Callable[[Request, Exception], Awaitable[JSONResponse]]:
        async def handler(request: Request, exc: Exception) -> JSONResponse:
            assert isinstance(exc, DomainException)
            log = logger.warning if status_code >= 500 else logger.info
            log(
                "%s at %s: %s",
                type(exc).__name__,
                request.url.path,
                exc.message,
                extra={"path": request.url.path, "error": exc.message},
            )
            headers: dict[str, str] = {}
            if isinstance(exc, RateLimited) and exc.wait_seconds is not None:
                headers["Retry-After"] = str(max(1, math.ceil(exc.wait_seconds)))
            if isinstance(exc, AuthExpired):
                headers["WWW-Authenticate"] = "Bearer"
            return JSONResponse(
                status_code=status_code,
                content={"detail": exc.message},
                headers=headers or None,
            )

        return handler

    for exc_type, status_code in _STATUS_BY_EXCEPTION.items():
        app.add_exception_handler(exc_type, _domain_handler(status_code))

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        """Any other domain exception is a bad request."""
        logger.warning(
            "Domain error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle pydantic request validation errors with 422."""
        sanitized_errors = _sanitize_validation_errors(list(exc.errors()))
        logger.warning(
            "Request validation error at %s: %s",
            request.url.path,
            sanitized_errors,
            extra={"path": request.url.path, "errors": sanitized_errors},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": sanitized_errors},
        )
