"""
Ephemeral state service backed by Redis.

Handles:
- Session countdown timers and their shadow state
- Room presence (hash) and change notification (pub/sub)
- Daily / weekly leaderboards (sorted sets)
- Activity streaks (one bit per day of year)
- Fixed-window rate limiting and distraction (cancellation) limiting
- Short-lived user status

Reads fail open: store errors and malformed records are logged and reported
as "not found". Writes that back a user-visible guarantee (starting a timer,
joining a room) raise EphemeralStoreError once retries are exhausted; other
writes are logged and dropped. Multi-key writes go through a single
MULTI/EXEC pipeline; there is no other concurrency control.
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from functools import partial
from typing import Any, AsyncIterator, Callable, Optional, Union

from pydantic import ValidationError
from redis.asyncio import Redis

from focusflow.core.constants import (
    DAILY_LEADERBOARD_TTL_SECONDS,
    DEFAULT_LEADERBOARD_LIMIT,
    DISTRACTION_LIMIT,
    DISTRACTION_WINDOW_SECONDS,
    ORACLE_DAILY_TTL_SECONDS,
    ROOM_PRESENCE_TTL_SECONDS,
    SESSION_STATE_BUFFER_SECONDS,
    SESSION_STATE_UPDATE_TTL_SECONDS,
    STREAK_LOOKBACK_DAYS,
    STREAK_TTL_SECONDS,
    USER_STATUS_TTL_SECONDS,
    WEEKLY_LEADERBOARD_TTL_SECONDS,
)
from focusflow.core.redis import RETRYABLE_ERRORS, EphemeralKeys, get_redis, with_retry
from focusflow.models.leaderboard import LeaderboardEntry, LeaderboardTimeframe
from focusflow.models.room import PresenceStatus, RoomEvent, RoomEventType, RoomPresence
from focusflow.models.session import (
    DistractionLimitResult,
    SessionStatus,
    SessionTimer,
    SessionType,
    UserStatus,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, str, None]


class EphemeralStoreError(Exception):
    """The ephemeral store could not complete a write after retries."""

    pass


# =============================================================================
# Date helpers
# =============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def date_key(day: date) -> str:
    """Calendar key for daily leaderboards: YYYY-MM-DD."""
    return day.isoformat()


def week_key(day: date) -> str:
    """ISO week key for weekly leaderboards: YYYY-Www."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def day_of_year(day: date) -> int:
    """Bit offset for a day in the streak bitmap (Jan 1 is 1)."""
    return day.timetuple().tm_yday


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _status_value(status: Union[PresenceStatus, str]) -> str:
    return status.value if isinstance(status, PresenceStatus) else status


class EphemeralStateService:
    """Timers, presence, leaderboards, streaks and limits on a shared Redis."""

    def __init__(
        self,
        redis: Optional[Redis] = None,
        keys: Optional[EphemeralKeys] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._redis = redis
        self.keys = keys or EphemeralKeys()
        self._clock = clock or _utcnow

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def now_ms(self) -> int:
        """Current time in epoch milliseconds, as stored in records."""
        return int(self._clock().timestamp() * 1000)

    def today(self) -> date:
        """Current UTC calendar day."""
        return self._clock().date()

    async def _get_record(self, key: str, model: type, description: str) -> Optional[Any]:
        """Read and parse a JSON record, returning None when absent or unreadable."""
        try:
            raw = await with_retry(partial(self.redis.get, key), description)
        except RETRYABLE_ERRORS:
            logger.warning("%s failed for key=%s", description, key, exc_info=True)
            return None

        if raw is None:
            return None

        try:
            return model.model_validate_json(raw)
        except ValidationError:
            logger.warning("Malformed record at key=%s, treating as absent", key)
            return None

    # =========================================================================
    # Session timers
    # =========================================================================

    async def set_session_timer(
        self,
        session_id: str,
        duration_minutes: int,
        session_type: Union[SessionType, str],
        user_id: Optional[str] = None,
    ) -> SessionTimer:
        """
        Record that a session started now.

        Writes the timer (TTL = duration) and its shadow state (TTL = duration
        + 5 minutes) in one pipeline. Overwrites any previous record for the
        same session id.

        Raises:
            EphemeralStoreError: If the write fails after retries
        """
        timer = SessionTimer(
            session_id=session_id,
            start_time=self.now_ms(),
            duration=duration_minutes,
            session_type=SessionType(session_type),
            status=SessionStatus.ACTIVE,
            user_id=user_id,
        )
        payload = timer.model_dump_json(by_alias=True, exclude_none=True)
        ttl_seconds = duration_minutes * 60
        timer_key = self.keys.session_timer(session_id)
        state_key = self.keys.session_state(session_id)

        async def _write() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.setex(timer_key, ttl_seconds, payload)
            pipe.setex(state_key, ttl_seconds + SESSION_STATE_BUFFER_SECONDS, payload)
            return await pipe.execute()

        try:
            await with_retry(_write, "set_session_timer")
        except RETRYABLE_ERRORS as e:
            logger.error("Failed to set session timer for session=%s: %s", session_id, e)
            raise EphemeralStoreError("Failed to set session timer") from e

        return timer

    async def get_session_timer(self, session_id: str) -> Optional[SessionTimer]:
        """Live timer record, or None once it has expired or been deleted."""
        return await self._get_record(
            self.keys.session_timer(session_id), SessionTimer, "get_session_timer"
        )

    async def get_session_state(self, session_id: str) -> Optional[SessionTimer]:
        """Shadow state record, which outlives the timer by a short buffer."""
        return await self._get_record(
            self.keys.session_state(session_id), SessionTimer, "get_session_state"
        )

    async def update_session_state(self, session_id: str, updates: dict[str, Any]) -> None:
        """
        Merge fields into the shadow state and refresh its TTL to 30 minutes.

        Keys are stored as given, so use the record's camelCase names. No-op
        when the shadow state is already gone. A concurrent writer between the
        read and the write can be overwritten.
        """
        state_key = self.keys.session_state(session_id)
        try:
            raw = await with_retry(partial(self.redis.get, state_key), "get_session_state")
            if raw is None:
                return

            current = json.loads(raw)
            if not isinstance(current, dict):
                logger.warning("Malformed session state at key=%s, skipping update", state_key)
                return

            current.update(updates)
            current["updatedAt"] = self.now_ms()
            payload = json.dumps(current, default=str)

            await with_retry(
                partial(self.redis.setex, state_key, SESSION_STATE_UPDATE_TTL_SECONDS, payload),
                "update_session_state",
            )
        except ValueError:
            logger.warning("Malformed session state at key=%s, skipping update", state_key)
        except RETRYABLE_ERRORS:
            logger.error("Error updating session state for session=%s", session_id, exc_info=True)

    async def delete_session_timer(self, session_id: str) -> None:
        """Remove the timer and its shadow state. Safe on absent keys."""
        keys = [self.keys.session_timer(session_id), self.keys.session_state(session_id)]
        try:
            await with_retry(partial(self.redis.delete, *keys), "delete_session_timer")
        except RETRYABLE_ERRORS:
            logger.error("Error deleting session timer for session=%s", session_id, exc_info=True)

    # =========================================================================
    # Room presence
    # =========================================================================

    async def join_room(
        self, room_id: str, user_id: str, user_data: Optional[dict[str, Any]] = None
    ) -> RoomPresence:
        """
        Add a user to the room presence hash and announce it.

        HSET, the 1-hour room TTL refresh and the user_joined publish run in
        one pipeline.

        Raises:
            EphemeralStoreError: If the write fails after retries
        """
        now_ms = self.now_ms()
        presence = RoomPresence.model_validate(
            {
                **(user_data or {}),
                "userId": user_id,
                "joinedAt": now_ms,
                "lastSeen": now_ms,
            }
        )
        presence_data = presence.model_dump(mode="json", by_alias=True)
        event = RoomEvent(
            type=RoomEventType.USER_JOINED,
            user_id=user_id,
            user_data=presence_data,
            timestamp=now_ms,
        )
        key = self.keys.room_presence(room_id)
        channel = self.keys.room_channel(room_id)

        async def _write() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.hset(key, user_id, json.dumps(presence_data))
            pipe.expire(key, ROOM_PRESENCE_TTL_SECONDS)
            pipe.publish(channel, event.model_dump_json(by_alias=True, exclude_none=True))
            return await pipe.execute()

        try:
            await with_retry(_write, "join_room")
        except RETRYABLE_ERRORS as e:
            logger.error("Error joining room=%s for user=%s: %s", room_id, user_id, e)
            raise EphemeralStoreError("Failed to join room") from e

        return presence

    async def leave_room(self, room_id: str, user_id: str) -> None:
        """Remove a user from the room and publish user_left."""
        key = self.keys.room_presence(room_id)
        channel = self.keys.room_channel(room_id)
        event = RoomEvent(type=RoomEventType.USER_LEFT, user_id=user_id, timestamp=self.now_ms())

        async def _write() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.hdel(key, user_id)
            pipe.publish(channel, event.model_dump_json(by_alias=True, exclude_none=True))
            return await pipe.execute()

        try:
            await with_retry(_write, "leave_room")
        except RETRYABLE_ERRORS:
            logger.error("Error leaving room=%s for user=%s", room_id, user_id, exc_info=True)

    async def update_user_presence(
        self, room_id: str, user_id: str, status: Union[PresenceStatus, str]
    ) -> None:
        """
        Patch a member's status and lastSeen, then publish user_status_changed.

        No-op when the user is not in the room.
        """
        key = self.keys.room_presence(room_id)
        channel = self.keys.room_channel(room_id)
        status_value = _status_value(status)

        try:
            raw = await with_retry(partial(self.redis.hget, key, user_id), "get_user_presence")
            if raw is None:
                return

            user_data = json.loads(raw)
            now_ms = self.now_ms()
            user_data["status"] = status_value
            user_data["lastSeen"] = now_ms
            event = RoomEvent(
                type=RoomEventType.USER_STATUS_CHANGED,
                user_id=user_id,
                status=status_value,
                timestamp=now_ms,
            )

            async def _write() -> list:
                pipe = self.redis.pipeline(transaction=True)
                pipe.hset(key, user_id, json.dumps(user_data))
                pipe.publish(channel, event.model_dump_json(by_alias=True, exclude_none=True))
                return await pipe.execute()

            await with_retry(_write, "update_user_presence")
        except (ValueError, TypeError):
            logger.warning("Malformed presence for user=%s in room=%s", user_id, room_id)
        except RETRYABLE_ERRORS:
            logger.error(
                "Error updating presence for user=%s in room=%s", user_id, room_id, exc_info=True
            )

    async def get_room_presence(self, room_id: str) -> dict[str, RoomPresence]:
        """Current members keyed by user id; unparseable entries are skipped."""
        key = self.keys.room_presence(room_id)
        try:
            entries = await with_retry(partial(self.redis.hgetall, key), "get_room_presence")
        except RETRYABLE_ERRORS:
            logger.warning("Error getting presence for room=%s", room_id, exc_info=True)
            return {}

        members: dict[str, RoomPresence] = {}
        for user_id, raw in (entries or {}).items():
            try:
                members[user_id] = RoomPresence.model_validate_json(raw)
            except ValidationError:
                logger.warning("Skipping malformed presence for user=%s in room=%s", user_id, room_id)
        return members

    async def room_events(self, room_id: str) -> AsyncIterator[RoomEvent]:
        """Yield events published on the room channel until the consumer stops."""
        channel = self.keys.room_channel(room_id)
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield RoomEvent.model_validate_json(message["data"])
                except ValidationError:
                    logger.warning("Skipping malformed event on channel=%s", channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    # =========================================================================
    # Leaderboards
    # =========================================================================

    def _leaderboard_key(self, day: date, timeframe: LeaderboardTimeframe) -> str:
        if timeframe == LeaderboardTimeframe.WEEKLY:
            return self.keys.weekly_leaderboard(week_key(day))
        return self.keys.daily_leaderboard(date_key(day))

    async def add_to_leaderboard(self, user_id: str, points: float, day: DateLike = None) -> None:
        """Add points to the user's daily and ISO-week totals in one pipeline."""
        day = _as_date(day) or self.today()
        daily_key = self.keys.daily_leaderboard(date_key(day))
        weekly_key = self.keys.weekly_leaderboard(week_key(day))

        async def _write() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.zincrby(daily_key, points, user_id)
            pipe.expire(daily_key, DAILY_LEADERBOARD_TTL_SECONDS)
            pipe.zincrby(weekly_key, points, user_id)
            pipe.expire(weekly_key, WEEKLY_LEADERBOARD_TTL_SECONDS)
            return await pipe.execute()

        try:
            await with_retry(_write, "add_to_leaderboard")
        except RETRYABLE_ERRORS:
            logger.error("Error adding %s points for user=%s", points, user_id, exc_info=True)

    async def get_leaderboard(
        self,
        day: DateLike = None,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
        timeframe: Union[LeaderboardTimeframe, str] = LeaderboardTimeframe.DAILY,
    ) -> list[LeaderboardEntry]:
        """Top `limit` entries by descending score. Ties follow Redis ordering."""
        if limit <= 0:
            return []

        day = _as_date(day) or self.today()
        key = self._leaderboard_key(day, LeaderboardTimeframe(timeframe))
        try:
            rows = await with_retry(
                partial(self.redis.zrange, key, 0, limit - 1, desc=True, withscores=True),
                "get_leaderboard",
            )
        except RETRYABLE_ERRORS:
            logger.warning("Error getting leaderboard key=%s", key, exc_info=True)
            return []

        return [
            LeaderboardEntry(user_id=member, score=score, rank=index + 1)
            for index, (member, score) in enumerate(rows)
        ]

    async def get_user_rank(self, user_id: str, day: DateLike = None) -> Optional[int]:
        """1-based daily rank (cardinality minus ascending index), None if unranked."""
        day = _as_date(day) or self.today()
        key = self.keys.daily_leaderboard(date_key(day))

        async def _read() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.zcard(key)
            pipe.zrank(key, user_id)
            return await pipe.execute()

        try:
            total, rank = await with_retry(_read, "get_user_rank")
        except RETRYABLE_ERRORS:
            logger.warning("Error getting rank for user=%s", user_id, exc_info=True)
            return None

        if rank is None:
            return None
        return total - rank

    async def get_user_score(
        self,
        user_id: str,
        day: DateLike = None,
        timeframe: Union[LeaderboardTimeframe, str] = LeaderboardTimeframe.DAILY,
    ) -> Optional[float]:
        """A user's points on one leaderboard, or None if they have none there."""
        day = _as_date(day) or self.today()
        key = self._leaderboard_key(day, LeaderboardTimeframe(timeframe))
        try:
            return await with_retry(partial(self.redis.zscore, key, user_id), "get_user_score")
        except RETRYABLE_ERRORS:
            logger.warning("Error getting score for user=%s", user_id, exc_info=True)
            return None

    # =========================================================================
    # Streaks
    # =========================================================================

    async def update_streak(self, user_id: str, day: DateLike = None) -> None:
        """Mark a day active in the user's bitmap and refresh its 1-year TTL."""
        day = _as_date(day) or self.today()
        key = self.keys.user_streak(user_id)

        async def _write() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.setbit(key, day_of_year(day), 1)
            pipe.expire(key, STREAK_TTL_SECONDS)
            return await pipe.execute()

        try:
            await with_retry(_write, "update_streak")
        except RETRYABLE_ERRORS:
            logger.error("Error updating streak for user=%s", user_id, exc_info=True)

    async def get_streak_days(self, user_id: str, year: Optional[int] = None) -> int:
        """
        Total active days recorded in the streak bitmap.

        The bitmap is indexed by day of year and shared across years, so this
        is an all-time count of set positions. `year` is accepted for callers
        but does not narrow the count.
        """
        key = self.keys.user_streak(user_id)
        try:
            count = await with_retry(partial(self.redis.bitcount, key), "get_streak_days")
        except RETRYABLE_ERRORS:
            logger.warning("Error getting streak days for user=%s", user_id, exc_info=True)
            return 0
        return count or 0

    async def get_current_streak(self, user_id: str, today: DateLike = None) -> int:
        """Consecutive active days ending today, looking back at most a year."""
        today = _as_date(today) or self.today()
        key = self.keys.user_streak(user_id)
        streak = 0

        try:
            for offset in range(STREAK_LOOKBACK_DAYS):
                day = today - timedelta(days=offset)
                active = await with_retry(
                    partial(self.redis.getbit, key, day_of_year(day)), "get_current_streak"
                )
                if not active:
                    break
                streak += 1
        except RETRYABLE_ERRORS:
            logger.warning("Error getting current streak for user=%s", user_id, exc_info=True)
            return 0

        return streak

    # =========================================================================
    # Rate limiting
    # =========================================================================

    async def _increment_window(self, key: str, window_seconds: int, description: str) -> int:
        """INCR a fixed-window counter and start its expiry in the same transaction.

        EXPIRE NX only sets a TTL when the key has none, so the window is not
        extended by later hits and a counter left without one gets it back.
        """

        async def _write() -> list:
            pipe = self.redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            return await pipe.execute()

        current, _ = await with_retry(_write, description)
        return current

    async def check_rate_limit(
        self, user_id: str, endpoint: str, limit: int, window_seconds: int
    ) -> bool:
        """True while the call count in the current window is within `limit`.

        Fails open when the store is unreachable.
        """
        key = self.keys.api_rate_limit(user_id, endpoint)
        try:
            current = await self._increment_window(key, window_seconds, "check_rate_limit")
        except RETRYABLE_ERRORS:
            logger.warning(
                "Rate limit check failed for user=%s endpoint=%s, allowing",
                user_id,
                endpoint,
                exc_info=True,
            )
            return True
        return current <= limit

    async def check_distraction_limit(self, user_id: str) -> DistractionLimitResult:
        """Count a session cancellation against the hourly limit of 5."""
        key = self.keys.distraction_limit(user_id)
        try:
            current = await self._increment_window(
                key, DISTRACTION_WINDOW_SECONDS, "check_distraction_limit"
            )
        except RETRYABLE_ERRORS:
            logger.warning(
                "Distraction limit check failed for user=%s, allowing", user_id, exc_info=True
            )
            return DistractionLimitResult(allowed=True, remaining=DISTRACTION_LIMIT)

        return DistractionLimitResult(
            allowed=current <= DISTRACTION_LIMIT,
            remaining=max(0, DISTRACTION_LIMIT - current),
        )

    async def claim_daily_consultation(self, user_id: str, day: DateLike = None) -> bool:
        """Claim today's oracle consultation. False if already claimed."""
        day = _as_date(day) or self.today()
        key = self.keys.oracle_daily(user_id, date_key(day))
        try:
            claimed = await with_retry(
                partial(self.redis.set, key, self.now_ms(), nx=True, ex=ORACLE_DAILY_TTL_SECONDS),
                "claim_daily_consultation",
            )
        except RETRYABLE_ERRORS:
            logger.warning("Oracle claim failed for user=%s, allowing", user_id, exc_info=True)
            return True
        return bool(claimed)

    async def release_daily_consultation(self, user_id: str, day: DateLike = None) -> None:
        """Give back a claim for a consultation that did not go ahead."""
        day = _as_date(day) or self.today()
        key = self.keys.oracle_daily(user_id, date_key(day))
        try:
            await with_retry(partial(self.redis.delete, key), "release_daily_consultation")
        except RETRYABLE_ERRORS:
            logger.error("Failed to release oracle claim for user=%s", user_id, exc_info=True)

    # =========================================================================
    # User status
    # =========================================================================

    async def set_user_status(
        self,
        user_id: str,
        status: Union[PresenceStatus, str],
        room_id: Optional[str] = None,
    ) -> None:
        """Store the user's status for 5 minutes and mirror it into room presence."""
        user_status = UserStatus(
            status=PresenceStatus(status), room_id=room_id, timestamp=self.now_ms()
        )
        key = self.keys.user_status(user_id)
        try:
            await with_retry(
                partial(
                    self.redis.setex,
                    key,
                    USER_STATUS_TTL_SECONDS,
                    user_status.model_dump_json(by_alias=True),
                ),
                "set_user_status",
            )
        except RETRYABLE_ERRORS:
            logger.error("Error setting status for user=%s", user_id, exc_info=True)
            return

        if room_id:
            await self.update_user_presence(room_id, user_id, user_status.status)

    async def get_user_status(self, user_id: str) -> Optional[UserStatus]:
        """Last status the user reported, None once it has expired (5 min)."""
        return await self._get_record(self.keys.user_status(user_id), UserStatus, "get_user_status")

    # =========================================================================
    # Health
    # =========================================================================

    async def health_check(self) -> bool:
        """Ping the store. Never raises."""
        try:
            await self.redis.ping()
            return True
        except Exception as e:
            logger.error("Redis health check failed: %s", e)
            return False
