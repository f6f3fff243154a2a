"""
Room presence endpoints.

Handles:
- POST /{room_id}/join - Join a room's live presence
- POST /{room_id}/leave - Leave it
- PUT /{room_id}/status - Update own status in the room
- GET /{room_id}/presence - Current members
- GET /{room_id}/events - Server-sent stream of membership events
"""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from focusflow.core.auth import AuthUser, get_current_user
from focusflow.models.room import (
    PresenceStatus,
    PresenceUpdateRequest,
    RoomPresence,
    RoomPresenceResponse,
)
from focusflow.models.session import SessionActionResponse
from focusflow.services.ephemeral_state_service import EphemeralStateService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ephemeral_state_service() -> EphemeralStateService:
    return EphemeralStateService()


@router.post("/{room_id}/join", response_model=RoomPresence)
async def join_room(
    room_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> RoomPresence:
    """Join a room as idle. Room membership itself is owned by the relational store."""
    presence = await state.join_room(
        room_id,
        user.user_id,
        {"name": user.name, "avatar": user.avatar, "status": PresenceStatus.IDLE.value},
    )
    logger.info("User joined room=%s", room_id, extra={"user_id": user.user_id, "room_id": room_id})
    return presence


@router.post("/{room_id}/leave", response_model=SessionActionResponse)
async def leave_room(
    room_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> SessionActionResponse:
    await state.leave_room(room_id, user.user_id)
    return SessionActionResponse()


@router.put("/{room_id}/status", response_model=SessionActionResponse)
async def update_room_status(
    room_id: str,
    body: PresenceUpdateRequest,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> SessionActionResponse:
    await state.update_user_presence(room_id, user.user_id, body.status)
    return SessionActionResponse()


@router.get("/{room_id}/presence", response_model=RoomPresenceResponse)
async def get_room_presence(
    room_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> RoomPresenceResponse:
    members = await state.get_room_presence(room_id)
    return RoomPresenceResponse(members=members)


async def _event_stream(state: EphemeralStateService, room_id: str) -> AsyncIterator[str]:
    """Format room events as server-sent events."""
    async for event in state.room_events(room_id):
        yield f"event: {event.type.value}\ndata: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


@router.get("/{room_id}/events")
async def stream_room_events(
    room_id: str,
    user: AuthUser = Depends(get_current_user),
    state: EphemeralStateService = Depends(get_ephemeral_state_service),
) -> StreamingResponse:
    """Stream join/leave/status events for a room until the client disconnects."""
    return StreamingResponse(_event_stream(state, room_id), media_type="text/event-stream")
