"""
Leaderboard, streak and stats models.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from focusflow.models.session import UserStatus


class LeaderboardTimeframe(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class LeaderboardEntry(BaseModel):
    """One row of a leaderboard, rank is 1-based."""

    user_id: str
    score: float
    rank: int


class LeaderboardResponse(BaseModel):
    timeframe: LeaderboardTimeframe
    day: date
    entries: list[LeaderboardEntry] = Field(default_factory=list)


class UserRankResponse(BaseModel):
    day: date
    rank: Optional[int] = None


class TodayStats(BaseModel):
    points: float = 0
    rank: Optional[int] = None


class StatsResponse(BaseModel):
    """Ephemeral-side stats for the dashboard."""

    current_streak: int = 0
    streak_days: int = 0  # all-time active days in the streak bitmap
    today: TodayStats = Field(default_factory=TodayStats)
    status: Optional[UserStatus] = None
