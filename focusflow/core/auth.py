"""
Bearer token verification for tokens issued by the identity provider.

Sign-in flows live with the provider; this module only verifies the
signature, audience and expiry of the token and exposes the caller as an
AuthUser dependency.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from focusflow.core.config import get_settings
from focusflow.core.middleware import bind_request_user

logger = logging.getLogger(__name__)

# HTTP Bearer token extraction
security = HTTPBearer(auto_error=False)


class AuthUser(BaseModel):
    """Authenticated user context from JWT claims."""

    user_id: str  # "sub" claim
    email: str = ""
    name: Optional[str] = None
    avatar: Optional[str] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> dict:
    """
    Decode and validate a provider-issued JWT.

    Checks signature, audience and expiry (python-jose validates exp).
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as e:
        logger.debug("Token rejected: %s", e)
        raise _unauthorized(f"Invalid token: {str(e)}")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthUser:
    """
    FastAPI dependency to get the current authenticated user.

    Usage:
        @router.get("/protected")
        async def protected_route(user: AuthUser = Depends(get_current_user)):
            return {"user_id": user.user_id}
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    payload = decode_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token: missing user ID")

    bind_request_user(user_id)
    return AuthUser(
        user_id=user_id,
        email=payload.get("email") or "",
        name=payload.get("name"),
        avatar=payload.get("picture"),
    )
