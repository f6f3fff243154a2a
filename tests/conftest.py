"""Shared pytest fixtures for test suite."""

import copy
import os

# Settings are read at import time by several modules
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-unit-tests")

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, patch

import pytest
from jose import jwt

from focusflow.core.redis import EphemeralKeys
from focusflow.services.ephemeral_state_service import EphemeralStateService

TEST_JWT_SECRET = os.environ["JWT_SECRET"]


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable UTC clock shared by the service and the store double."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# =============================================================================
# In-memory Redis double
# =============================================================================


class FakePipeline:
    """Queues commands and runs them in order on execute()."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._commands: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str) -> Callable[..., "FakePipeline"]:
        def queue(*args: Any, **kwargs: Any) -> "FakePipeline":
            self._commands.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list:
        """Apply every queued command, or none of them if one raises (MULTI/EXEC)."""
        self._redis.pipelines_executed += 1
        commands, self._commands = self._commands, []
        snapshot = (copy.deepcopy(self._redis._data), dict(self._redis._expires))
        results = []
        try:
            for name, args, kwargs in commands:
                results.append(await getattr(self._redis, name)(*args, **kwargs))
        except Exception:
            self._redis._data, self._redis._expires = snapshot
            raise
        return results


class FakeRedis:
    """
    Minimal async Redis stand-in with decode_responses=True semantics.

    Covers the commands the ephemeral state service issues. Expiry is
    evaluated lazily against the injected clock.
    """

    def __init__(self, clock: Callable[[], datetime]):
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self.published: list[tuple[str, str]] = []
        self.pipelines_executed = 0

    # --- keyspace ---

    def _now(self) -> float:
        return self._clock().timestamp()

    def _alive(self, key: str) -> bool:
        expires_at = self._expires.get(key)
        if expires_at is not None and expires_at <= self._now():
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    def _get_typed(self, key: str, factory: Callable[[], Any]) -> Any:
        if not self._alive(key):
            self._data[key] = factory()
        return self._data[key]

    def ttl(self, key: str) -> int:
        """Seconds left on a key: -2 when absent, -1 when persistent."""
        if not self._alive(key):
            return -2
        if key not in self._expires:
            return -1
        return int(round(self._expires[key] - self._now()))

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self) -> bool:
        return True

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        if not self._alive(key):
            return False
        if nx and key in self._expires:
            return False
        self._expires[key] = self._now() + seconds
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return removed

    # --- strings ---

    async def get(self, key: str) -> Optional[str]:
        if not self._alive(key):
            return None
        return self._data[key]

    async def set(
        self, key: str, value: Any, nx: bool = False, ex: Optional[int] = None
    ) -> Optional[bool]:
        if nx and self._alive(key):
            return None
        self._data[key] = str(value)
        self._expires.pop(key, None)
        if ex is not None:
            self._expires[key] = self._now() + ex
        return True

    async def setex(self, key: str, seconds: int, value: Any) -> bool:
        return await self.set(key, value, ex=seconds)

    async def incr(self, key: str) -> int:
        current = int(self._data[key]) if self._alive(key) else 0
        self._data[key] = str(current + 1)
        return current + 1

    # --- hashes ---

    async def hset(self, key: str, field: str, value: str) -> int:
        hash_ = self._get_typed(key, dict)
        is_new = field not in hash_
        hash_[field] = value
        return int(is_new)

    async def hget(self, key: str, field: str) -> Optional[str]:
        if not self._alive(key):
            return None
        return self._data[key].get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        if not self._alive(key):
            return {}
        return dict(self._data[key])

    async def hdel(self, key: str, *fields: str) -> int:
        if not self._alive(key):
            return 0
        hash_ = self._data[key]
        removed = sum(1 for field in fields if hash_.pop(field, None) is not None)
        if not hash_:
            await self.delete(key)
        return removed

    # --- pub/sub ---

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0

    # --- sorted sets ---

    def _sorted_members(self, key: str) -> list[tuple[str, float]]:
        if not self._alive(key):
            return []
        return sorted(self._data[key].items(), key=lambda item: (item[1], item[0]))

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        zset = self._get_typed(key, dict)
        zset[member] = zset.get(member, 0.0) + float(amount)
        return zset[member]

    async def zrange(
        self, key: str, start: int, end: int, desc: bool = False, withscores: bool = False
    ) -> list:
        members = self._sorted_members(key)
        if desc:
            members.reverse()
        if end < 0:
            end = len(members) + end
        selected = members[start : end + 1]
        if withscores:
            return selected
        return [member for member, _ in selected]

    async def zrank(self, key: str, member: str) -> Optional[int]:
        for index, (candidate, _) in enumerate(self._sorted_members(key)):
            if candidate == member:
                return index
        return None

    async def zcard(self, key: str) -> int:
        return len(self._sorted_members(key))

    async def zscore(self, key: str, member: str) -> Optional[float]:
        if not self._alive(key):
            return None
        return self._data[key].get(member)

    # --- bitmaps (stored as the set of offsets that are 1) ---

    async def setbit(self, key: str, offset: int, value: int) -> int:
        bits = self._get_typed(key, set)
        previous = int(offset in bits)
        if value:
            bits.add(offset)
        else:
            bits.discard(offset)
        return previous

    async def getbit(self, key: str, offset: int) -> int:
        if not self._alive(key):
            return 0
        return int(offset in self._data[key])

    async def bitcount(self, key: str) -> int:
        if not self._alive(key):
            return 0
        return len(self._data[key])


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Wednesday 2024-03-13 10:00 UTC."""
    return FakeClock(datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def keys() -> EphemeralKeys:
    return EphemeralKeys("test")


@pytest.fixture
def service(fake_redis, keys, clock) -> EphemeralStateService:
    """EphemeralStateService wired to the in-memory store and fake clock."""
    return EphemeralStateService(redis=fake_redis, keys=keys, clock=clock)


@pytest.fixture
def no_retry_delay():
    """Skip the backoff sleeps between store retries."""
    with patch("focusflow.core.redis.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


# =============================================================================
# JWT Fixtures
# =============================================================================


@pytest.fixture
def valid_jwt_claims():
    """Standard valid JWT claims from the identity provider."""
    now = int(time.time())
    return {
        "sub": "user-123",
        "email": "test@example.com",
        "name": "Test User",
        "picture": "https://example.com/avatar.png",
        "aud": "authenticated",
        "iat": now,
        "exp": now + 3600,
    }


def create_test_jwt(claims: dict, secret: str = TEST_JWT_SECRET) -> str:
    """Sign claims with HS256."""
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def valid_jwt_token(valid_jwt_claims):
    return create_test_jwt(valid_jwt_claims)


@pytest.fixture
def expired_jwt_token(valid_jwt_claims):
    claims = valid_jwt_claims.copy()
    claims["exp"] = int(time.time()) - 3600
    return create_test_jwt(claims)


@pytest.fixture
def wrong_audience_jwt_token(valid_jwt_claims):
    claims = valid_jwt_claims.copy()
    claims["aud"] = "wrong-audience"
    return create_test_jwt(claims)


@pytest.fixture
def missing_sub_jwt_token(valid_jwt_claims):
    claims = valid_jwt_claims.copy()
    del claims["sub"]
    return create_test_jwt(claims)


@pytest.fixture
def wrong_signature_jwt_token(valid_jwt_claims):
    return create_test_jwt(valid_jwt_claims, secret="some-other-secret")
