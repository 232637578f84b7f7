"""Exception handlers and request logging middleware.

Maps domain exceptions from ``Bullion_Rate.utils.exceptions`` to HTTP status
codes. The API never answers with a fabricated price: when no plausible
upstream data exists it answers 503 with ``{error, message}``. Provides
request logging middleware that logs method, path, status code, and duration.
"""

import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from Bullion_Rate.utils.exceptions import (
    InvalidInputError,
    PriceEngineError,
    StorageFailureError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

_QUIET_PATHS = frozenset({"/api/health"})
_NO_STORE = {"Cache-Control": "no-store"}


# ---------------------------------------------------------------------------
# Domain exception -> HTTP status handlers
# ---------------------------------------------------------------------------


async def _upstream_unavailable_handler(
    request: Request, exc: UpstreamUnavailableError
) -> JSONResponse:
    """Map UpstreamUnavailableError to HTTP 503."""
    logger.error("Upstream unavailable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": str(exc)},
        headers=_NO_STORE,
    )


async def _invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    """Map InvalidInputError to HTTP 503: upstream data failed the sanity checks."""
    logger.error("Rejected implausible input: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": str(exc)},
        headers=_NO_STORE,
    )


async def _storage_failure_handler(request: Request, exc: StorageFailureError) -> JSONResponse:
    """Map StorageFailureError to HTTP 503."""
    logger.error("Storage failure: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"error": "Storage unavailable", "message": str(exc)},
        headers=_NO_STORE,
    )


async def _price_engine_error_handler(request: Request, exc: PriceEngineError) -> JSONResponse:
    """Map any other PriceEngineError to HTTP 500."""
    logger.error("Price engine error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)},
        headers=_NO_STORE,
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map unexpected faults to HTTP 500 without leaking internals."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": "Unexpected failure."},
        headers=_NO_STORE,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain exception handlers on the FastAPI application.

    More specific exception types must be registered before their base classes
    so FastAPI matches them correctly.
    """
    app.add_exception_handler(UpstreamUnavailableError, _upstream_unavailable_handler)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidInputError, _invalid_input_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StorageFailureError, _storage_failure_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PriceEngineError, _price_engine_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request, log timing information, and return response."""
        start_time = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start_time) * 1000

        path = request.url.path
        level = logging.DEBUG if path in _QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms)",
            request.method,
            path,
            response.status_code,
            duration_ms,
        )

        return response
