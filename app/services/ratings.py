from __future__ import annotations

import logging

from sqlalchemy import and_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.models.catalog import Rating
from app.models.common import utcnow
from app.services.catalog import get_book, update_book_rating

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    # ON CONFLICT lives on the dialect-specific insert construct.
    return sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert


async def _get_user_rating(db: AsyncSession, *, user_id: int, book_id: int) -> Rating | None:
    stmt = (
        select(Rating)
        .where(and_(Rating.user_id == user_id, Rating.book_id == book_id))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def rate_book(
    db: AsyncSession,
    *,
    user_id: int,
    book_id: int,
    rating: int,
    review: str | None = None,
) -> Rating:
    """Create or replace the user's rating for a book and refresh the book aggregate."""
    if await get_book(db, book_id) is None:
        raise NotFoundError(f"Book not found with id: {book_id}")

    clean_review = (review or "").strip() or None
    now = utcnow()
    stmt = _insert_for(db)(Rating).values(
        user_id=user_id,
        book_id=book_id,
        rating=rating,
        review=clean_review,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Rating.user_id, Rating.book_id],
        set_={
            "rating": stmt.excluded.rating,
            "review": stmt.excluded.review,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)

    row = await _get_user_rating(db, user_id=user_id, book_id=book_id)
    await update_book_rating(db, book_id, commit=False)
    await db.commit()
    logger.info("User %s rated book %s with %s", user_id, book_id, rating)
    return row


async def delete_rating(db: AsyncSession, *, user_id: int, book_id: int) -> None:
    row = await _get_user_rating(db, user_id=user_id, book_id=book_id)
    if row is None:
        raise NotFoundError("Rating not found")
    await db.delete(row)
    await db.flush()
    await update_book_rating(db, book_id, commit=False)
    await db.commit()


async def list_ratings_for_book(db: AsyncSession, book_id: int) -> list[Rating]:
    stmt = select(Rating).where(Rating.book_id == book_id).order_by(Rating.created_at.desc(), Rating.id.desc())
    return list((await db.execute(stmt)).scalars().all())


async def list_reviews_for_book(db: AsyncSession, book_id: int) -> list[Rating]:
    stmt = (
        select(Rating)
        .where(and_(Rating.book_id == book_id, Rating.review.is_not(None), Rating.review != ""))
        .order_by(Rating.created_at.desc(), Rating.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def list_ratings_for_user(db: AsyncSession, user_id: int) -> list[Rating]:
    stmt = select(Rating).where(Rating.user_id == user_id).order_by(Rating.created_at.desc(), Rating.id.desc())
    return list((await db.execute(stmt)).scalars().all())
