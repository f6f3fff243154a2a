import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from focusflow.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None

# Startup connectivity check
MAX_RETRIES = 3
RETRY_DELAYS = [1, 2, 4]  # Exponential backoff in seconds

# Per-operation retry for store commands
STORE_MAX_RETRIES = 3
STORE_RETRY_BASE_DELAY = 0.1  # 0.1s, 0.2s between attempts

RETRYABLE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def _reset_redis() -> None:
    """Reset Redis state (for testing)."""
    global _redis_pool, _redis_client
    _redis_pool = None
    _redis_client = None


async def init_redis() -> None:
    """Initialize Redis connection pool with connectivity check.

    Retries connection up to 3 times with exponential backoff (1s, 2s, 4s).
    Raises RuntimeError if all attempts fail.
    """
    global _redis_pool, _redis_client

    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout,
            decode_responses=True,
        )
        _redis_client = Redis(connection_pool=_redis_pool)

    last_error: Optional[Exception] = None

    for attempt in range(MAX_RETRIES):
        try:
            await _redis_client.ping()
            logger.info("Redis connection verified")
            return
        except RETRYABLE_ERRORS as e:
            last_error = e
            if attempt < MAX_RETRIES - 1:
                delay = RETRY_DELAYS[attempt]
                logger.warning(
                    "Redis ping failed (attempt %d/%d), retrying in %ds: %s",
                    attempt + 1,
                    MAX_RETRIES,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)

    raise RuntimeError(f"Redis connection failed after {MAX_RETRIES} attempts: {last_error}")


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool, _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None


def get_redis() -> Redis:
    """Get Redis client instance.

    Must call init_redis() during application startup before using this.

    Raises:
        RuntimeError: If Redis is not initialized
    """
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def with_retry(operation: Callable[[], Awaitable[T]], description: str = "redis operation") -> T:
    """Await a store operation, retrying transient failures.

    ``operation`` is a zero-argument factory so every attempt issues a fresh
    command (pipelines must be rebuilt per attempt). Increments are not
    idempotent: a retry after a lost acknowledgment can apply twice.

    Raises the last error once STORE_MAX_RETRIES attempts have failed.
    """
    for attempt in range(STORE_MAX_RETRIES):
        try:
            return await operation()
        except RETRYABLE_ERRORS as e:
            if attempt == STORE_MAX_RETRIES - 1:
                raise
            delay = STORE_RETRY_BASE_DELAY * (2**attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt + 1,
                STORE_MAX_RETRIES,
                delay,
                e,
            )
            await asyncio.sleep(delay)
    raise RuntimeError(f"{description} failed after {STORE_MAX_RETRIES} attempts")


class EphemeralKeys:
    """Redis key patterns for ephemeral state, prefixed by the app namespace."""

    def __init__(self, namespace: Optional[str] = None) -> None:
        self.namespace = namespace or settings.redis_namespace

    def session_timer(self, session_id: str) -> str:
        """String key holding the live countdown record."""
        return f"{self.namespace}:session:timer:{session_id}"

    def session_state(self, session_id: str) -> str:
        """Shadow copy of the timer with a longer TTL."""
        return f"{self.namespace}:session:state:{session_id}"

    def room_presence(self, room_id: str) -> str:
        """Hash of user id -> presence record."""
        return f"{self.namespace}:room:presence:{room_id}"

    def room_channel(self, room_id: str) -> str:
        """Pub/sub channel for room membership events."""
        return f"{self.namespace}:room:channel:{room_id}"

    def daily_leaderboard(self, date_key: str) -> str:
        return f"{self.namespace}:leaderboard:daily:{date_key}"

    def weekly_leaderboard(self, week_key: str) -> str:
        return f"{self.namespace}:leaderboard:weekly:{week_key}"

    def user_streak(self, user_id: str) -> str:
        """Bitmap with one bit per day of year."""
        return f"{self.namespace}:streak:{user_id}"

    def api_rate_limit(self, user_id: str, endpoint: str) -> str:
        return f"{self.namespace}:rate:{endpoint}:{user_id}"

    def distraction_limit(self, user_id: str) -> str:
        return f"{self.namespace}:distraction:limit:{user_id}"

    def user_status(self, user_id: str) -> str:
        return f"{self.namespace}:user:status:{user_id}"

    def oracle_daily(self, user_id: str, date_key: str) -> str:
        """Marker set once the user has consulted the oracle on a given day."""
        return f"{self.namespace}:oracle:daily:{user_id}:{date_key}"
