"""
Global exception handlers for FastAPI.

Maps domain exceptions to HTTP responses, eliminating try/except
boilerplate from routers. Register with register_exception_handlers(app).
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def error_response(
    status_code: int, detail: str, code: Optional[str] = None, **extra: Any
) -> JSONResponse:
    """Build a standardized error JSON response."""
    content: dict = {"detail": detail}
    if code:
        content["code"] = code
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain exception handlers on the FastAPI app."""
    from focusflow.models.limits import DailyLimitReachedError
    from focusflow.models.session import DistractionLimitExceededError, SessionNotFoundError
    from focusflow.services.ephemeral_state_service import EphemeralStoreError

    # --- Session handlers ---

    @app.exception_handler(SessionNotFoundError)
    async def _session_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        return error_response(404, "Session not found.", "SESSION_NOT_FOUND")

    @app.exception_handler(DistractionLimitExceededError)
    async def _distraction_limit(
        request: Request, exc: DistractionLimitExceededError
    ) -> JSONResponse:
        return error_response(
            429,
            "You've reached the maximum number of cancellations for this hour. "
            f"{exc.remaining} attempts remaining.",
            "DISTRACTION_LIMIT_REACHED",
            remaining=exc.remaining,
        )

    # --- Oracle handlers ---

    @app.exception_handler(DailyLimitReachedError)
    async def _daily_limit(request: Request, exc: DailyLimitReachedError) -> JSONResponse:
        return error_response(
            429,
            "The Oracle speaks only once per day. Return tomorrow for new wisdom.",
            "DAILY_LIMIT_REACHED",
        )

    # --- Infrastructure handlers ---

    @app.exception_handler(EphemeralStoreError)
    async def _ephemeral_store(request: Request, exc: EphemeralStoreError) -> JSONResponse:
        logger.error("Ephemeral store error on %s %s: %s", request.method, request.url.path, exc)
        return error_response(
            503, "Live session state is temporarily unavailable.", "EPHEMERAL_STATE_UNAVAILABLE"
        )

    # --- Catch-all ---

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(500, "Internal server error.", "INTERNAL_ERROR")
