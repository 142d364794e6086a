from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.catalog import BorrowRecordOut
from app.services.auth import AuthUser, get_current_user
from app.services.borrowing import list_borrows_for_user

router = APIRouter(prefix="/borrows", tags=["borrows"])


@router.get("/me", response_model=list[BorrowRecordOut])
async def my_borrows(
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> list[BorrowRecordOut]:
    return [BorrowRecordOut.model_validate(x) for x in await list_borrows_for_user(db, current_user.user_id)]
