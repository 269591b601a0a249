"""HTTP request/response logging middleware."""

from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Paths to skip logging
SKIP_LOGGING_PATHS = {"/healthz", "/"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in SKIP_LOGGING_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = time.perf_counter() - start_time
            logger.error(
                "%s %s ERROR %.3fs: %s: %s",
                method,
                path,
                duration,
                type(exc).__name__,
                exc,
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        status_code = response.status_code
        level = logging.WARNING if status_code >= 400 else logging.INFO
        user_id = getattr(request.state, "user_id", None)
        logger.log(
            level,
            "%s %s user_id=%s %s %.3fs",
            method,
            path,
            user_id or "-",
            status_code,
            duration,
        )
        return response
