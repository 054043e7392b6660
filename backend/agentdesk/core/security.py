from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from agentdesk.core.config import settings

bearer_scheme = HTTPBearer(auto_error=True)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _normalize_token(token: Optional[str]) -> str:
    """
    Tolerate copy-paste artefacts: whitespace, surrounding quotes and an
    accidental 'Bearer ' prefix inside the token field.
    """
    if token is None:
        return ""

    t = token.strip()
    if len(t) >= 2 and t[0] == t[-1] and t[0] in {'"', "'"}:
        t = t[1:-1].strip()
    if t.lower().startswith("bearer "):
        t = t[7:].strip()
    return t


def create_access_token(user_id: uuid.UUID | str, expires_minutes: Optional[int] = None) -> str:
    """Issue an HS256 token whose `sub` is the user id. Used by the auth service and tests."""
    now = datetime.now(timezone.utc)
    expire_dt = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode: dict[str, Any] = {
        "sub": str(user_id),
        "exp": int(expire_dt.timestamp()),
        "iat": int(now.timestamp()),
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_user_id(token: str) -> uuid.UUID:
    """Validate the bearer token and return its subject as a user id."""
    token = _normalize_token(token)
    if not token:
        raise _unauthorized()

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError:
        # expired, malformed, bad signature, wrong algorithm
        raise _unauthorized()

    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized()
