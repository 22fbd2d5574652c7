"""Request middleware: request ids bound into structlog and per-request timing."""

from __future__ import annotations

import time
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from suggestion_engine.observability.logger import get_logger

logger = get_logger("middleware")

QUIET_PATHS = {"/health"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Reuse a caller-supplied id so host and engine logs line up.
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        start = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                error=str(e),
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            raise

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Duration-MS"] = str(duration_ms)
        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        log("request_completed", method=request.method, status=response.status_code, duration_ms=duration_ms)
        return response
