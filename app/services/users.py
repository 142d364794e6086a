from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError
from app.core.security import hash_password, verify_password
from app.models.user import User
from app.schemas.user import UserCreateIn

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    return (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    stmt = select(User).where(User.username == username.strip())
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_user(db: AsyncSession, data: UserCreateIn, *, role: str = "USER") -> User:
    username = data.username.strip()
    email = data.email.strip().lower()
    stmt = select(User.id).where(or_(User.username == username, User.email == email)).limit(1)
    existing = (await db.execute(stmt)).scalars().first()
    if existing is not None:
        raise ConflictError("Username or email already registered")

    user = User(
        username=username,
        email=email,
        hashed_password=hash_password(data.password),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        phone_number=(data.phone_number or "").strip() or None,
        role=role,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent registration with the same username or email.
        await db.rollback()
        raise ConflictError("Username or email already registered") from exc
    await db.refresh(user)
    logger.info("Registered user id=%s username=%s", user.id, user.username)
    return user


async def authenticate(db: AsyncSession, *, username: str, password: str) -> User | None:
    user = await get_user_by_username(db, username)
    if user is None or not user.is_active or not verify_password(password, user.hashed_password):
        return None
    return user
