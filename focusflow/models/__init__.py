"""Pydantic models for FocusFlow API."""

from focusflow.models.leaderboard import (
    LeaderboardEntry,
    LeaderboardResponse,
    LeaderboardTimeframe,
    StatsResponse,
    TodayStats,
    UserRankResponse,
)
from focusflow.models.limits import (
    AllowanceResponse,
    DailyLimitReachedError,
    RateLimitError,
    RateLimitExceededError,
)
from focusflow.models.room import (
    PresenceStatus,
    PresenceUpdateRequest,
    RoomEvent,
    RoomEventType,
    RoomPresence,
    RoomPresenceResponse,
)
from focusflow.models.session import (
    CancelSessionResponse,
    CompleteSessionResponse,
    DistractionLimitExceededError,
    DistractionLimitResult,
    SessionActionResponse,
    SessionNotFoundError,
    SessionServiceError,
    SessionStatus,
    SessionTimer,
    SessionTimerResponse,
    SessionType,
    StartSessionRequest,
    StartSessionResponse,
    UserStatus,
)

__all__ = [
    # Leaderboard
    "LeaderboardEntry",
    "LeaderboardResponse",
    "LeaderboardTimeframe",
    "StatsResponse",
    "TodayStats",
    "UserRankResponse",
    # Limits
    "AllowanceResponse",
    "DailyLimitReachedError",
    "RateLimitError",
    "RateLimitExceededError",
    # Room
    "PresenceStatus",
    "PresenceUpdateRequest",
    "RoomEvent",
    "RoomEventType",
    "RoomPresence",
    "RoomPresenceResponse",
    # Session
    "CancelSessionResponse",
    "CompleteSessionResponse",
    "DistractionLimitExceededError",
    "DistractionLimitResult",
    "SessionActionResponse",
    "SessionNotFoundError",
    "SessionServiceError",
    "SessionStatus",
    "SessionTimer",
    "SessionTimerResponse",
    "SessionType",
    "StartSessionRequest",
    "StartSessionResponse",
    "UserStatus",
]
