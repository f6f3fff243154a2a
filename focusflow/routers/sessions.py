"""
Session lifecycle endpoints.

Handles:
- POST /start - Start a timer (rate limited)
- GET /{session_id}/timer - Live countdown
- POST /{session_id}/pause - Pause
- POST /{session_id}/resume - Resume
- POST /{session_id}/cancel - Cancel (distraction limited)
- POST /{session_id}/complete - Complete, award points and streak

The durable session record belongs to the relational store; these
endpoints only drive the ephemeral timer, status, leaderboard and streak.
"""

import logging
import uuid

from fastapi import APIRouter, Depends

from focusflow.core.auth import AuthUser, get_current_user
from focusflow.core.constants import POINTS_PER_FOCUS_MINUTE
from focusflow.core.rate_limit import enforce_rate_limit
from focusflow.models.room import PresenceStatus
from focusflow.models.session import (
    CancelSessionResponse,
    CompleteSessionResponse,
    DistractionLimitExceededError,
    SessionActionResponse,
    SessionNotFoundError,
    SessionStatus,
    SessionTimer,
    SessionTimerResponse,
    SessionType,
    StartSessionRequest,
    StartSessionResponse,
)
from focusflow.services.ephemeral_state_service import EphemeralStateService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ephemeral_state_service() -> EphemeralStateService:
    return EphemeralStateService()


def _status_for(session_type: SessionType) -> PresenceStatus:
    return PresenceStatus.FOCUS if session_type == SessionType.FOCUS else PresenceStatus.BREAK


async def _get_owned_state(
    state: EphemeralStateService, session_id: str, user: AuthUser
) -> SessionTimer:
    """Shadow state for a session the caller owns, else SessionNotFoundError."""
    session = await state.get_session_state(session_id)
    if session is None or not session.is_owned_by(user.user_id):
        raise SessionNotFoundError(session_id)
    return session


@router.post("/start", response_model=StartSessionResponse)
async def start_session(
    body: StartSessionRequest,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> StartSessionResponse:
    """Start a session timer and mark the user focused or on break."""
    await enforce_rate_limit(state, user.user_id, "session_start")

    session_id = str(uuid.uuid4())
    await state.set_session_timer(session_id, body.duration, body.type, user_id=user.user_id)
    await state.set_user_status(user.user_id, _status_for(body.type), body.room_id)

    logger.info(
        "Session started: session=%s type=%s duration=%d",
        session_id,
        body.type.value,
        body.duration,
        extra={"user_id": user.user_id, "session_id": session_id},
    )
    return StartSessionResponse(session_id=session_id)


@router.get("/{session_id}/timer", response_model=SessionTimerResponse)
async def get_session_timer(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> SessionTimerResponse:
    """Live timer with seconds remaining; 404 once the countdown has expired."""
    timer = await state.get_session_timer(session_id)
    if timer is None or not timer.is_owned_by(user.user_id):
        raise SessionNotFoundError(session_id)

    return SessionTimerResponse(
        timer=timer, remaining_seconds=timer.remaining_seconds(state.now_ms())
    )


@router.post("/{session_id}/pause", response_model=SessionActionResponse)
async def pause_session(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> SessionActionResponse:
    await _get_owned_state(state, session_id, user)
    await state.update_session_state(session_id, {"status": SessionStatus.PAUSED.value})
    await state.set_user_status(user.user_id, PresenceStatus.IDLE)
    return SessionActionResponse()


@router.post("/{session_id}/resume", response_model=SessionActionResponse)
async def resume_session(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> SessionActionResponse:
    session = await _get_owned_state(state, session_id, user)
    await state.update_session_state(session_id, {"status": SessionStatus.ACTIVE.value})
    await state.set_user_status(user.user_id, _status_for(session.session_type))
    return SessionActionResponse()


@router.post("/{session_id}/cancel", response_model=CancelSessionResponse)
async def cancel_session(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> CancelSessionResponse:
    """Cancel a session; each cancellation counts against the hourly limit."""
    limit_check = await state.check_distraction_limit(user.user_id)
    if not limit_check.allowed:
        raise DistractionLimitExceededError(limit_check.remaining)

    session = await state.get_session_state(session_id)
    if session is not None and not session.is_owned_by(user.user_id):
        raise SessionNotFoundError(session_id)

    await state.delete_session_timer(session_id)
    await state.set_user_status(user.user_id, PresenceStatus.IDLE)

    logger.info(
        "Session cancelled: session=%s remaining=%d",
        session_id,
        limit_check.remaining,
        extra={"user_id": user.user_id, "session_id": session_id},
    )
    return CancelSessionResponse(remaining=limit_check.remaining)


@router.post("/{session_id}/complete", response_model=CompleteSessionResponse)
async def complete_session(
    session_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> CompleteSessionResponse:
    """
    Complete a session.

    Focus sessions earn 2 points per minute on the daily and weekly
    leaderboards and mark today in the streak bitmap.
    """
    session = await _get_owned_state(state, session_id, user)

    await state.delete_session_timer(session_id)
    await state.set_user_status(user.user_id, PresenceStatus.IDLE)

    points = 0
    if session.session_type == SessionType.FOCUS:
        points = session.duration * POINTS_PER_FOCUS_MINUTE
        await state.add_to_leaderboard(user.user_id, points)
        await state.update_streak(user.user_id)

    logger.info(
        "Session completed: session=%s points=%d",
        session_id,
        points,
        extra={"user_id": user.user_id, "session_id": session_id},
    )
    return CompleteSessionResponse(points=points)
