from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.db.session import get_db
from app.schemas.catalog import RatingOut
from app.schemas.user import UserCreateIn, UserOut
from app.services.ratings import list_ratings_for_user
from app.services.users import create_user, get_user

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(payload: UserCreateIn, db: AsyncSession = Depends(get_db)) -> UserOut:
    return UserOut.model_validate(await create_user(db, payload))


@router.get("/{user_id}", response_model=UserOut)
async def get_user_by_id(user_id: int, db: AsyncSession = Depends(get_db)) -> UserOut:
    row = await get_user(db, user_id)
    if row is None:
        raise NotFoundError("User not found")
    return UserOut.model_validate(row)


@router.get("/{user_id}/ratings", response_model=list[RatingOut])
async def user_ratings(user_id: int, db: AsyncSession = Depends(get_db)) -> list[RatingOut]:
    return [RatingOut.model_validate(x) for x in await list_ratings_for_user(db, user_id)]
