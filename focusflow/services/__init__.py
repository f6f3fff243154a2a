"""Business logic services for FocusFlow API."""

from focusflow.services.ephemeral_state_service import (
    EphemeralStateService,
    EphemeralStoreError,
)

__all__ = [
    "EphemeralStateService",
    "EphemeralStoreError",
]
