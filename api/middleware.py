"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from connectors.exceptions import (
    AuthError,
    ConfigurationError,
    ConnectorError,
    NotFoundError,
    ProviderError,
    UnsupportedOperationError,
    UnsupportedSourceError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (AuthError, 401),
    (UnsupportedOperationError, 400),
    (UnsupportedSourceError, 400),
    (ConfigurationError, 500),
    (ProviderError, 502),
)


def status_for(exc: ConnectorError) -> int:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


def register_middleware(app: FastAPI) -> None:
    """Attach any app-level middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Render connector-layer failures as JSON error bodies."""

    @app.exception_handler(ConnectorError)
    async def connector_error_handler(request: Request, exc: ConnectorError):
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "success": False,
                "error": exc.message,
                "code": exc.code,
                "retryable": exc.retryable,
            },
        )
