"""
Rate limiting for API endpoints.

Access checks are the probing surface of the API, so they are limited per
caller in addition to the per-memory escalation tracking.
"""
import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import settings
from app.errors import RateLimitError, format_error_response

logger = logging.getLogger(__name__)


def get_caller_identifier(request: Request) -> str:
    """
    Rate limit key for a request.

    Uses the bearer token when present so limits follow the caller rather
    than a shared proxy address; falls back to the remote address.

    Args:
        request: FastAPI request object

    Returns:
        Identifier string
    """
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        return f"bearer:{authorization[7:].strip()}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_caller_identifier,
    default_limits=["1000/hour"],
    storage_uri="memory://",
    enabled=settings.rate_limit_enabled,
)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Render slowapi's RateLimitExceeded in the standard error envelope."""
    logger.warning(
        f"Rate limit exceeded on {request.url.path}: {exc.detail}",
        extra={"request_id": getattr(request.state, "request_id", "unknown")},
    )
    return format_error_response(
        request,
        RateLimitError(message=f"Rate limit exceeded: {exc.detail}", retry_after=60),
    )
