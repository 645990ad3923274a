"""FastAPI dependencies for database, authentication, actors, and idempotency."""

import hashlib
from datetime import datetime
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, ValidationError

SYSTEM_ACTOR = "system"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def _decode_bearer(authorization: str) -> dict:
    """Validate a Bearer authorization header and return the token payload."""
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")

    if payload.get("sub") is None:
        raise AuthenticationError("Invalid token payload")

    # Check token expiration
    exp = payload.get("exp")
    if exp and datetime.utcnow().timestamp() > exp:
        raise AuthenticationError("Token has expired")

    return payload


async def get_actor(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    x_actor: Optional[str] = Header(None, alias="X-Actor"),
) -> str:
    """
    Resolve who is performing a command.

    A Bearer token wins and must be valid. Without one the X-Actor header is
    used, and anonymous calls are attributed to the system actor.
    """
    if authorization:
        return str(_decode_bearer(authorization)["sub"])

    if x_actor and x_actor.strip():
        return x_actor.strip()[:100]

    return SYSTEM_ACTOR


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate idempotency key from request headers.

    Args:
        idempotency_key: Idempotency key from header

    Returns:
        str: Hashed idempotency key or None if not provided

    Raises:
        ValidationError: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None

    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise ValidationError("Idempotency key must be between 1 and 255 characters")

    # Hash the key for consistent storage
    return hashlib.sha256(idempotency_key.encode()).hexdigest()


DatabaseSession = Depends(get_db)
Actor = Depends(get_actor)
IdempotencyKey = Depends(get_idempotency_key)
