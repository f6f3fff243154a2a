"""
Per-endpoint rate limiting on top of the ephemeral state service.

Fixed-window counters keyed by endpoint and user id, shared by every API
instance through Redis. Limits fail open when Redis is unreachable.
"""

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from focusflow.core.config import get_settings
from focusflow.core.constants import RATE_LIMITS
from focusflow.models.limits import RateLimitExceededError
from focusflow.services.ephemeral_state_service import EphemeralStateService


async def enforce_rate_limit(
    service: EphemeralStateService,
    user_id: str,
    endpoint: str,
    limit: Optional[int] = None,
    window_seconds: Optional[int] = None,
) -> None:
    """
    Count a call against the endpoint's window.

    Limits default to RATE_LIMITS[endpoint].

    Raises:
        RateLimitExceededError: If the window's limit is exceeded
    """
    if not get_settings().rate_limit_enabled:
        return

    if limit is None or window_seconds is None:
        limit, window_seconds = RATE_LIMITS[endpoint]

    allowed = await service.check_rate_limit(user_id, endpoint, limit, window_seconds)
    if not allowed:
        raise RateLimitExceededError(endpoint, limit, window_seconds)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Handle rate limit exceeded errors with a standardized response."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please try again later.",
            "code": "RATE_LIMITED",
            "endpoint": exc.endpoint,
            "retry_after_seconds": exc.window_seconds,
        },
    )
