"""Map AIError codes onto HTTP responses."""

from __future__ import annotations

import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from suggestion_engine.exceptions import AIError, ConfigurationError, ErrorCode
from suggestion_engine.observability.logger import get_logger

logger = get_logger("api_errors")

STATUS_BY_CODE = {
    ErrorCode.NOT_CONFIGURED: 503,
    ErrorCode.INVALID_API_KEY: 503,
    ErrorCode.FEATURE_DISABLED: 403,
    ErrorCode.INVALID_INPUT: 422,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.CONTEXT_TOO_LONG: 413,
    ErrorCode.PARSE_ERROR: 502,
    ErrorCode.PROVIDER_ERROR: 502,
    ErrorCode.NETWORK_ERROR: 502,
}


async def ai_error_handler(request: Request, exc: AIError) -> JSONResponse:
    status = STATUS_BY_CODE.get(exc.code, 500)
    headers = {}
    if exc.code is ErrorCode.RATE_LIMITED and exc.retry_after_ms is not None:
        headers["Retry-After"] = str(math.ceil(exc.retry_after_ms / 1000))
    logger.warning(
        "request_error",
        path=request.url.path,
        code=exc.code.value,
        family=exc.family.value,
        status=status,
    )
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.warning("configuration_rejected", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AIError, ai_error_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
