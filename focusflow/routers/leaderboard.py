"""
Leaderboard endpoints.

Handles:
- GET / - Top entries for a day or ISO week
- GET /rank - Caller's daily rank
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from focusflow.core.auth import AuthUser, get_current_user
from focusflow.core.constants import DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT
from focusflow.models.leaderboard import (
    LeaderboardResponse,
    LeaderboardTimeframe,
    UserRankResponse,
)
from focusflow.services.ephemeral_state_service import EphemeralStateService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ephemeral_state_service() -> EphemeralStateService:
    return EphemeralStateService()


@router.get("/", response_model=LeaderboardResponse)
async def get_leaderboard(
    day: Optional[date] = Query(None, alias="date"),
    limit: int = Query(DEFAULT_LEADERBOARD_LIMIT, ge=1, le=MAX_LEADERBOARD_LIMIT),
    timeframe: LeaderboardTimeframe = Query(LeaderboardTimeframe.DAILY),
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> LeaderboardResponse:
    """Top scorers for a day (default today, UTC) or the ISO week containing it."""
    day = day or state.today()
    entries = await state.get_leaderboard(day, limit, timeframe)
    return LeaderboardResponse(timeframe=timeframe, day=day, entries=entries)


@router.get("/rank", response_model=UserRankResponse)
async def get_user_rank(
    day: Optional[date] = Query(None, alias="date"),
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> UserRankResponse:
    day = day or state.today()
    rank = await state.get_user_rank(user.user_id, day)
    return UserRankResponse(day=day, rank=rank)
