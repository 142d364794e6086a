from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_db
from app.schemas.auth import AuthUserOut, LoginIn, TokenOut
from app.services.auth import AuthUser, create_access_token, get_current_user
from app.services.users import authenticate

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenOut)
async def login(payload: LoginIn, db: AsyncSession = Depends(get_db)) -> TokenOut:
    user = await authenticate(db, username=payload.username, password=payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token(user_id=user.id, username=user.username, email=user.email, role=user.role)
    return TokenOut(access_token=token, expires_in=settings.jwt_expires_minutes * 60)


@router.get("/me", response_model=AuthUserOut)
async def me(current_user: AuthUser = Depends(get_current_user)) -> AuthUserOut:
    return AuthUserOut(
        user_id=current_user.user_id,
        username=current_user.username,
        email=current_user.email,
        role=current_user.role,
    )
