"""
Request middleware for tracking and logging.

- RequestIDMiddleware: assigns X-Request-ID and logs each request once it completes
- PerformanceMiddleware: adds X-Response-Time and flags slow requests
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.logging_config import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Reuses the caller's X-Request-ID when present, otherwise generates one.
    The ID is stored on request.state so error responses can echo it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}: {e}",
                exc_info=True,
                extra={"request_id": request_id},
            )
            raise

        duration = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} - {duration:.3f}s",
            extra={
                "request_id": request_id,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Track request latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {duration:.3f}s",
                extra={
                    "request_id": getattr(request.state, "request_id", "unknown"),
                    "duration_ms": round(duration * 1000, 2),
                    "slow_request": True,
                },
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}"
        return response
