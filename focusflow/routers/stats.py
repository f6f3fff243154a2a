from fastapi import APIRouter, Depends

from focusflow.core.auth import AuthUser, get_current_user
from focusflow.models.leaderboard import StatsResponse, TodayStats
from focusflow.services.ephemeral_state_service import EphemeralStateService

router = APIRouter()


def get_ephemeral_state_service() -> EphemeralStateService:
    return EphemeralStateService()


@router.get("/", response_model=StatsResponse)
async def get_stats(
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> StatsResponse:
    """Streak, today's points and rank, and current status for the dashboard."""
    today = state.today()
    score = await state.get_user_score(user.user_id, today)

    return StatsResponse(
        current_streak=await state.get_current_streak(user.user_id, today),
        streak_days=await state.get_streak_days(user.user_id, today.year),
        today=TodayStats(
            points=score or 0,
            rank=await state.get_user_rank(user.user_id, today),
        ),
        status=await state.get_user_status(user.user_id),
    )
