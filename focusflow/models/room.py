"""
Room presence and room event models.

Presence records and events are stored as JSON text in Redis with
camelCase field names, so records written by earlier deployments keep
parsing.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ===========================================
# Enums
# ===========================================


class PresenceStatus(str, Enum):
    """What a user is doing right now."""

    FOCUS = "focus"
    BREAK = "break"
    IDLE = "idle"


class RoomEventType(str, Enum):
    """Events published on a room's channel."""

    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    USER_STATUS_CHANGED = "user_status_changed"


# ===========================================
# Stored Records
# ===========================================


class RoomPresence(BaseModel):
    """A member's entry in the room presence hash.

    Callers may attach arbitrary profile fields; they are kept as extras.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    user_id: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    status: str = PresenceStatus.IDLE.value
    joined_at: int
    last_seen: int


class RoomEvent(BaseModel):
    """Membership or status change broadcast to room subscribers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: RoomEventType
    user_id: str
    user_data: Optional[dict[str, Any]] = None
    status: Optional[str] = None
    timestamp: int


# ===========================================
# Request / Response Models
# ===========================================


class PresenceUpdateRequest(BaseModel):
    """Body of PUT /rooms/{room_id}/status."""

    status: PresenceStatus


class RoomPresenceResponse(BaseModel):
    """Current members of a room keyed by user id."""

    members: dict[str, RoomPresence] = Field(default_factory=dict)
