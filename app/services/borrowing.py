from __future__ import annotations

import logging
from datetime import date, timedelta

from fastapi import HTTPException
from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidStateError, NotFoundError
from app.models.catalog import ACTIVE_BORROW_STATUSES, BorrowRecord
from app.models.user import User
from app.services.catalog import decrease_available_copies, increase_available_copies

logger = logging.getLogger(__name__)

ALREADY_BORROWED = "You already borrowed this book"
LIMIT_REACHED = "Active borrow limit reached"


def compute_fine(due_date: date, returned_on: date, *, per_day: float | None = None) -> float:
    rate = settings.fine_per_day if per_day is None else per_day
    days_late = (returned_on - due_date).days
    if days_late <= 0:
        return 0.0
    return round(days_late * rate, 2)


async def _active_record(db: AsyncSession, *, user_id: int, book_id: int) -> BorrowRecord | None:
    stmt = (
        select(BorrowRecord)
        .where(
            and_(
                BorrowRecord.user_id == user_id,
                BorrowRecord.book_id == book_id,
                BorrowRecord.status.in_(ACTIVE_BORROW_STATUSES),
            )
        )
        .order_by(BorrowRecord.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def count_active_borrows(db: AsyncSession, user_id: int) -> int:
    stmt = select(func.count(BorrowRecord.id)).where(
        and_(BorrowRecord.user_id == user_id, BorrowRecord.status.in_(ACTIVE_BORROW_STATUSES))
    )
    return int((await db.execute(stmt)).scalar_one() or 0)


async def borrow_book(
    db: AsyncSession,
    *,
    user_id: int,
    book_id: int,
    loan_days: int | None = None,
    today: date | None = None,
) -> BorrowRecord:
    # Row lock on the borrower serialises that user's borrows on PostgreSQL. SQLite
    # ignores FOR UPDATE; the recount after the insert covers it there.
    await db.execute(select(User.id).where(User.id == user_id).with_for_update())
    if await _active_record(db, user_id=user_id, book_id=book_id) is not None:
        raise InvalidStateError(ALREADY_BORROWED)
    if await count_active_borrows(db, user_id) >= settings.max_active_borrows:
        raise InvalidStateError(LIMIT_REACHED)

    try:
        await decrease_available_copies(db, book_id, commit=False)
    except HTTPException:
        await db.rollback()
        raise

    borrow_date = today or date.today()
    days = settings.loan_period_days if loan_days is None else loan_days
    record = BorrowRecord(
        user_id=user_id,
        book_id=book_id,
        borrow_date=borrow_date,
        due_date=borrow_date + timedelta(days=days),
        status="BORROWED",
        fine_amount=0.0,
    )
    db.add(record)
    try:
        await db.flush()
    except IntegrityError as exc:
        # uq_borrow_records_active_user_book: a concurrent borrow of the same book won.
        await db.rollback()
        raise InvalidStateError(ALREADY_BORROWED) from exc
    if await count_active_borrows(db, user_id) > settings.max_active_borrows:
        await db.rollback()
        raise InvalidStateError(LIMIT_REACHED)
    await db.commit()
    await db.refresh(record)
    logger.info("User %s borrowed book %s (due %s)", user_id, book_id, record.due_date)
    return record


async def return_book(
    db: AsyncSession,
    *,
    user_id: int,
    book_id: int,
    today: date | None = None,
) -> BorrowRecord:
    record = await _active_record(db, user_id=user_id, book_id=book_id)
    if record is None:
        raise NotFoundError("No active borrow for this book")

    returned_on = today or date.today()
    record.status = "RETURNED"
    record.return_date = returned_on
    record.fine_amount = compute_fine(record.due_date, returned_on)
    await increase_available_copies(db, book_id, commit=False)
    await db.commit()
    await db.refresh(record)
    logger.info("User %s returned book %s (fine %.2f)", user_id, book_id, record.fine_amount)
    return record


async def list_borrows_for_user(db: AsyncSession, user_id: int) -> list[BorrowRecord]:
    stmt = (
        select(BorrowRecord)
        .where(BorrowRecord.user_id == user_id)
        .order_by(BorrowRecord.borrow_date.desc(), BorrowRecord.id.desc())
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())


async def mark_overdue_records(db: AsyncSession, *, today: date | None = None) -> int:
    current = today or date.today()
    stmt = (
        update(BorrowRecord)
        .where(and_(BorrowRecord.status == "BORROWED", BorrowRecord.due_date < current))
        .values(status="OVERDUE")
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return int(result.rowcount or 0)
