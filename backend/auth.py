"""
Authentication for Folio.

Signed-in users carry a JWT in the `session` cookie; sign-in itself is
handled by the identity provider in front of this service. Visitors
without a session edit as guests, identified by a random `guest_id`
cookie that names their server-side guest storage.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Cookie, HTTPException, Response, status

from backend import config
from backend.models.user import User
from backend.repos.user_repo import UserRepo
from engine.kernel.types import Identity

user_repo = UserRepo()

GUEST_COOKIE = "guest_id"


def create_jwt(user_id: UUID) -> str:
    """
    Create a JWT for a user session.

    Args:
        user_id: User UUID to encode in the token

    Returns:
        Signed JWT string
    """
    expires_at = datetime.now(UTC) + timedelta(hours=config.settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(user_id),
        "exp": expires_at,
        "iat": datetime.now(UTC),
    }
    return jwt.encode(payload, config.settings.JWT_SECRET, algorithm=config.settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a JWT.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(token, config.settings.JWT_SECRET, algorithms=[config.settings.JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e


def user_id_from_token(token: str | None) -> UUID | None:
    """Subject of a valid session token, or None. Never raises."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, config.settings.JWT_SECRET, algorithms=[config.settings.JWT_ALGORITHM])
        return UUID(payload.get("sub", ""))
    except (jwt.InvalidTokenError, ValueError):
        return None


async def get_current_user(session: Annotated[str | None, Cookie()] = None) -> User:
    """
    FastAPI dependency: the signed-in user, or 401.
    """
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Please sign in.",
        )

    payload = decode_jwt(session)
    try:
        user_id = UUID(payload.get("sub") or "")
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e

    user = await user_repo.get(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found. Please sign in again.",
        )
    return user


async def get_optional_user(session: Annotated[str | None, Cookie()] = None) -> User | None:
    """
    FastAPI dependency: the signed-in user, or None for guests.
    An invalid or expired session counts as no session.
    """
    user_id = user_id_from_token(session)
    if user_id is None:
        return None
    return await user_repo.get(user_id)


def identity_for(user: User | None) -> Identity | None:
    return user.identity() if user is not None else None


def get_guest_id(guest_id: Annotated[str | None, Cookie()] = None) -> str | None:
    return guest_id


def ensure_guest_id(response: Response, guest_id: str | None) -> str:
    """Existing guest id, or a new one set as a cookie on response."""
    if guest_id:
        return guest_id
    guest_id = secrets.token_urlsafe(16)
    response.set_cookie(
        key=GUEST_COOKIE,
        value=guest_id,
        httponly=True,
        samesite="lax",
        secure=config.settings.ENVIRONMENT != "development",
        max_age=config.settings.GUEST_SESSION_TTL_HOURS * 3600,
    )
    return guest_id
