"""
Session timer, user status and distraction-limit models.

Also defines session-related domain exceptions.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from focusflow.models.room import PresenceStatus

# ===========================================
# Enums
# ===========================================


class SessionType(str, Enum):
    """Pomodoro session kinds."""

    FOCUS = "FOCUS"
    SHORT_BREAK = "SHORT_BREAK"
    LONG_BREAK = "LONG_BREAK"


class SessionStatus(str, Enum):
    """Lifecycle status mirrored into the shadow state record."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ===========================================
# Stored Records
# ===========================================


class SessionTimer(BaseModel):
    """Timer / shadow state record for one session.

    Partial updates merged into the shadow state are kept as extra fields.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    session_id: str
    start_time: int  # epoch milliseconds
    duration: int  # minutes
    session_type: SessionType = Field(alias="type")
    status: SessionStatus = SessionStatus.ACTIVE
    user_id: Optional[str] = None  # owner, when started through the API
    updated_at: Optional[int] = None

    def is_owned_by(self, user_id: str) -> bool:
        """Records written without an owner are treated as shared."""
        return self.user_id is None or self.user_id == user_id

    @property
    def ends_at(self) -> int:
        """Epoch milliseconds at which the countdown reaches zero."""
        return self.start_time + self.duration * 60 * 1000

    def remaining_seconds(self, now_ms: int) -> int:
        return max(0, (self.ends_at - now_ms) // 1000)


class UserStatus(BaseModel):
    """Short-lived status shown to other users."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: PresenceStatus
    room_id: Optional[str] = None
    timestamp: int


class DistractionLimitResult(BaseModel):
    """Outcome of a cancellation-limit check."""

    allowed: bool
    remaining: int


# ===========================================
# Request / Response Models
# ===========================================


class StartSessionRequest(BaseModel):
    """Body of POST /sessions/start."""

    type: SessionType
    duration: int = Field(gt=0, le=240)
    room_id: Optional[str] = None


class StartSessionResponse(BaseModel):
    session_id: str


class SessionTimerResponse(BaseModel):
    """Live timer plus seconds left on the countdown."""

    timer: SessionTimer
    remaining_seconds: int


class SessionActionResponse(BaseModel):
    success: bool = True


class CancelSessionResponse(BaseModel):
    success: bool = True
    remaining: int


class CompleteSessionResponse(BaseModel):
    success: bool = True
    points: int = 0


# ===========================================
# Exceptions
# ===========================================


class SessionServiceError(Exception):
    """Base exception for session lifecycle errors."""

    pass


class SessionNotFoundError(SessionServiceError):
    """No live timer or shadow state exists for the session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class DistractionLimitExceededError(SessionServiceError):
    """User cancelled too many sessions in the current window."""

    def __init__(self, remaining: int):
        self.remaining = remaining
        super().__init__(f"Distraction limit reached, {remaining} cancellations remaining")
