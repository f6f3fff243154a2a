"""
Allowance gates for the AI features.

The chat assistant and the daily oracle call an external generative API
from the frontend's server routes; these endpoints decide whether a call
may proceed.

Handles:
- POST /chat/allowance - 30 messages per 5 minutes
- POST /oracle/allowance - once per calendar day, backed by a 24h limit
"""

import logging

from fastapi import APIRouter, Depends

from focusflow.core.auth import AuthUser, get_current_user
from focusflow.core.rate_limit import enforce_rate_limit
from focusflow.models.limits import (
    AllowanceResponse,
    DailyLimitReachedError,
    RateLimitExceededError,
)
from focusflow.services.ephemeral_state_service import EphemeralStateService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ephemeral_state_service() -> EphemeralStateService:
    return EphemeralStateService()


@router.post("/chat/allowance", response_model=AllowanceResponse)
async def chat_allowance(
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> AllowanceResponse:
    await enforce_rate_limit(state, user.user_id, "ai_chat")
    return AllowanceResponse(endpoint="ai_chat")


@router.post("/oracle/allowance", response_model=AllowanceResponse)
async def oracle_allowance(
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> AllowanceResponse:
    """
    Claim today's oracle consultation.

    Already consulted today -> DailyLimitReachedError; the rolling 24h limit
    is a backup check -> RateLimitExceededError. Both surface as 429. A call
    refused by the backup check does not use up the day.
    """
    day = state.today()
    if not await state.claim_daily_consultation(user.user_id, day):
        raise DailyLimitReachedError(user.user_id)

    try:
        await enforce_rate_limit(state, user.user_id, "oracle_consult")
    except RateLimitExceededError:
        await state.release_daily_consultation(user.user_id, day)
        raise
    return AllowanceResponse(endpoint="oracle_consult")
