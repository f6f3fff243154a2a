"""
Rate-limit models and exceptions.

The oracle has two distinct refusals: the user already consulted it today,
or the per-endpoint rate limit tripped. Both map to HTTP 429 with
different codes.
"""

from pydantic import BaseModel


class AllowanceResponse(BaseModel):
    """Returned by the AI gate endpoints when the call may proceed."""

    allowed: bool = True
    endpoint: str


class RateLimitError(Exception):
    """Base exception for rate-limit refusals."""

    pass


class RateLimitExceededError(RateLimitError):
    """Fixed-window per-endpoint limit exceeded."""

    def __init__(self, endpoint: str, limit: int, window_seconds: int):
        self.endpoint = endpoint
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(f"Rate limit exceeded for {endpoint}: {limit} per {window_seconds}s")


class DailyLimitReachedError(RateLimitError):
    """Oracle already consulted today."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} already consulted the oracle today")
