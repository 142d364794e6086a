from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_db
from app.services.users import get_user

bearer = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class AuthUser:
    user_id: int
    username: str
    email: str
    role: str


def create_access_token(*, user_id: int, username: str, email: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "username": username,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            leeway=settings.jwt_exp_leeway_seconds,
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def _parse_payload(payload: dict[str, Any]) -> AuthUser:
    try:
        user_id = int(payload.get("sub"))
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid sub claim") from exc

    return AuthUser(
        user_id=user_id,
        username=str(payload.get("username") or ""),
        email=str(payload.get("email") or "").strip().lower(),
        role=str(payload.get("role") or "USER").strip().upper(),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> AuthUser:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    claims = _parse_payload(_decode_token(credentials.credentials))
    # The database stays the source of truth for role and active state.
    row = await get_user(db, claims.user_id)
    if row is None or not row.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return AuthUser(user_id=row.id, username=row.username, email=row.email, role=row.role)


def require_role(user: AuthUser, allowed: set[str]) -> None:
    if user.role not in allowed:
        raise HTTPException(status_code=403, detail="Forbidden")


async def get_current_staff(current_user: AuthUser = Depends(get_current_user)) -> AuthUser:
    require_role(current_user, {"LIBRARIAN", "ADMIN"})
    return current_user
