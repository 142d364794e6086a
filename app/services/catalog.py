from __future__ import annotations

import logging
from collections.abc import Sequence
from math import ceil

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, InvalidStateError, NotFoundError
from app.models.catalog import Book, BorrowRecord, Rating
from app.schemas.catalog import BookFilters, BookIn

logger = logging.getLogger(__name__)

OPENLIBRARY_COVER_URL = "https://covers.openlibrary.org/b/isbn/{isbn}-L.jpg"

SORTABLE_COLUMNS = {
    "title": Book.title,
    "author": Book.author,
    "category": Book.category,
    "publication_year": Book.publication_year,
    "average_rating": Book.average_rating,
    "created_at": Book.created_at,
    "available_copies": Book.available_copies,
}

_MUTABLE_FIELDS = (
    "title",
    "author",
    "isbn",
    "description",
    "category",
    "publisher",
    "publication_year",
    "page_count",
    "language",
    "cover_image_url",
    "available_copies",
    "total_copies",
)


def _norm(value: str | None) -> str:
    return (value or "").strip()


def cover_url_for(book: Book) -> str | None:
    if _norm(book.cover_image_url):
        return book.cover_image_url
    clean_isbn = "".join(ch for ch in _norm(book.isbn) if ch not in "- ")
    if not clean_isbn:
        return None
    return OPENLIBRARY_COVER_URL.format(isbn=clean_isbn)


async def _scalars(db: AsyncSession, stmt) -> list[Book]:
    # Copy counters are changed by bulk UPDATEs, so rows always overwrite the identity map.
    return list((await db.execute(stmt.execution_options(populate_existing=True))).scalars().all())


def _top_rated_order():
    return (Book.average_rating.desc().nulls_last(), Book.id.asc())


# ── Store lookups ────────────────────────────────────


async def get_book(db: AsyncSession, book_id: int) -> Book | None:
    stmt = select(Book).where(Book.id == book_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_book_by_isbn(db: AsyncSession, isbn: str) -> Book | None:
    return (await db.execute(select(Book).where(Book.isbn == isbn))).scalar_one_or_none()


async def find_books_by_author_excluding(
    db: AsyncSession, *, author: str, exclude_id: int, limit: int
) -> list[Book]:
    stmt = (
        select(Book)
        .where(and_(Book.author == author, Book.id != exclude_id))
        .order_by(*_top_rated_order())
        .limit(limit)
    )
    return await _scalars(db, stmt)


async def find_recommended_books_by_category(db: AsyncSession, *, category: str, limit: int) -> list[Book]:
    stmt = select(Book).where(Book.category == category).order_by(*_top_rated_order()).limit(limit)
    return await _scalars(db, stmt)


async def find_books_by_min_rating(db: AsyncSession, *, threshold: float) -> list[Book]:
    stmt = (
        select(Book)
        .where(Book.average_rating >= threshold)
        .order_by(Book.average_rating.desc(), Book.id.asc())
    )
    return await _scalars(db, stmt)


async def find_available_books(db: AsyncSession, *, limit: int, offset: int = 0) -> list[Book]:
    stmt = select(Book).where(Book.available_copies > 0).order_by(Book.id.asc()).offset(offset).limit(limit)
    return await _scalars(db, stmt)


async def find_top_rated_books(db: AsyncSession, *, limit: int, offset: int = 0) -> list[Book]:
    stmt = select(Book).order_by(*_top_rated_order()).offset(offset).limit(limit)
    return await _scalars(db, stmt)


async def find_recent_books(db: AsyncSession, *, limit: int) -> list[Book]:
    stmt = select(Book).order_by(Book.created_at.desc(), Book.id.desc()).limit(limit)
    return await _scalars(db, stmt)


async def find_books_by_category(db: AsyncSession, category: str) -> list[Book]:
    stmt = select(Book).where(Book.category == category).order_by(Book.title.asc())
    return await _scalars(db, stmt)


async def find_user_preferred_categories(db: AsyncSession, user_id: int) -> list[str]:
    """Distinct categories of the user's borrowed books, earliest borrow first."""
    stmt = (
        select(Book.category)
        .join(BorrowRecord, BorrowRecord.book_id == Book.id)
        .where(BorrowRecord.user_id == user_id)
        .group_by(Book.category)
        .order_by(func.min(BorrowRecord.id))
    )
    return [str(x) for x in (await db.execute(stmt)).scalars().all()]


async def _distinct_values(db: AsyncSession, column) -> list[str]:
    stmt = select(column).where(column.is_not(None)).distinct().order_by(column.asc())
    return [str(x) for x in (await db.execute(stmt)).scalars().all()]


async def list_categories(db: AsyncSession) -> list[str]:
    return await _distinct_values(db, Book.category)


async def list_languages(db: AsyncSession) -> list[str]:
    return await _distinct_values(db, Book.language)


async def list_publishers(db: AsyncSession) -> list[str]:
    return await _distinct_values(db, Book.publisher)


async def average_rating_for_book(db: AsyncSession, book_id: int) -> float | None:
    value = (await db.execute(select(func.avg(Rating.rating)).where(Rating.book_id == book_id))).scalar_one()
    return float(value) if value is not None else None


async def count_ratings_for_book(db: AsyncSession, book_id: int) -> int:
    value = (await db.execute(select(func.count(Rating.id)).where(Rating.book_id == book_id))).scalar_one()
    return int(value or 0)


# ── Search / paging ──────────────────────────────────


def _search_filters(term: str):
    like = f"%{term.lower()}%"
    return [
        or_(
            func.lower(Book.title).like(like),
            func.lower(Book.author).like(like),
            func.lower(func.coalesce(Book.description, "")).like(like),
            func.lower(Book.category).like(like),
        )
    ]


def _enhanced_filters(filters: BookFilters):
    out = []
    if filters.title:
        out.append(func.lower(Book.title).like(f"%{filters.title.lower()}%"))
    if filters.author:
        out.append(func.lower(Book.author).like(f"%{filters.author.lower()}%"))
    if filters.category:
        out.append(Book.category == filters.category)
    if filters.language:
        out.append(Book.language == filters.language)
    if filters.isbn:
        out.append(Book.isbn == filters.isbn)
    if filters.publisher:
        out.append(func.lower(Book.publisher).like(f"%{filters.publisher.lower()}%"))
    if filters.min_year is not None:
        out.append(Book.publication_year >= filters.min_year)
    if filters.max_year is not None:
        out.append(Book.publication_year <= filters.max_year)
    if filters.min_rating is not None:
        out.append(Book.average_rating >= filters.min_rating)
    if filters.max_rating is not None:
        out.append(Book.average_rating <= filters.max_rating)
    if filters.available_only:
        out.append(Book.available_copies > 0)
    return out


def _sort_stmt(stmt, *, sort_by: str, sort_dir: str):
    column = SORTABLE_COLUMNS.get(sort_by, Book.title)
    ordered = column.desc().nulls_last() if sort_dir.lower() == "desc" else column.asc().nulls_last()
    return stmt.order_by(ordered, Book.id.asc())


async def page_books(
    db: AsyncSession,
    *,
    filters: Sequence = (),
    page: int = 0,
    size: int = 12,
    sort_by: str = "title",
    sort_dir: str = "asc",
) -> tuple[list[Book], int, int]:
    """Return ``(rows, total, total_pages)`` for a zero-based page."""

    def _with_filters(stmt):
        return stmt.where(and_(*filters)) if filters else stmt

    total = int((await db.execute(_with_filters(select(func.count()).select_from(Book)))).scalar_one() or 0)
    total_pages = ceil(total / size) if size else 0

    stmt = _sort_stmt(_with_filters(select(Book)), sort_by=sort_by, sort_dir=sort_dir)
    rows = await _scalars(db, stmt.offset(page * size).limit(size))
    return rows, total, total_pages


async def search_books(db: AsyncSession, term: str | None, **paging) -> tuple[list[Book], int, int]:
    query = _norm(term)
    return await page_books(db, filters=_search_filters(query) if query else (), **paging)


async def filter_books(db: AsyncSession, filters: BookFilters, **paging) -> tuple[list[Book], int, int]:
    return await page_books(db, filters=_enhanced_filters(filters), **paging)


# ── Mutations ────────────────────────────────────────


def _check_copies(data: BookIn) -> None:
    if data.available_copies > data.total_copies:
        raise InvalidStateError("available_copies cannot exceed total_copies")


async def create_book(db: AsyncSession, data: BookIn) -> Book:
    _check_copies(data)
    if await get_book_by_isbn(db, data.isbn) is not None:
        raise ConflictError(f"A book with ISBN {data.isbn} already exists")

    book = Book(**data.model_dump(include=set(_MUTABLE_FIELDS)), average_rating=None, rating_count=0)
    db.add(book)
    await db.commit()
    await db.refresh(book)
    logger.info("Created book id=%s isbn=%s", book.id, book.isbn)
    return book


async def update_book(db: AsyncSession, book_id: int, data: BookIn) -> Book:
    book = await get_book(db, book_id)
    if book is None:
        raise NotFoundError(f"Book not found with id: {book_id}")
    _check_copies(data)
    if data.isbn != book.isbn and await get_book_by_isbn(db, data.isbn) is not None:
        raise ConflictError(f"A book with ISBN {data.isbn} already exists")

    for key in _MUTABLE_FIELDS:
        setattr(book, key, getattr(data, key))

    await db.commit()
    await db.refresh(book)
    logger.info("Updated book id=%s", book.id)
    return book


async def delete_book(db: AsyncSession, book_id: int) -> None:
    book = await get_book(db, book_id)
    if book is None:
        raise NotFoundError(f"Book not found with id: {book_id}")

    await db.execute(delete(Rating).where(Rating.book_id == book_id))
    await db.execute(delete(BorrowRecord).where(BorrowRecord.book_id == book_id))
    await db.delete(book)
    await db.commit()
    logger.info("Deleted book id=%s", book_id)


async def is_book_available(db: AsyncSession, book_id: int) -> bool:
    book = await get_book(db, book_id)
    return book is not None and book.available_copies > 0


async def decrease_available_copies(db: AsyncSession, book_id: int, *, commit: bool = True) -> None:
    stmt = (
        update(Book)
        .where(and_(Book.id == book_id, Book.available_copies > 0))
        .values(available_copies=Book.available_copies - 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        if await get_book(db, book_id) is None:
            raise NotFoundError(f"Book not found with id: {book_id}")
        raise InvalidStateError("No available copies for this book")
    if commit:
        await db.commit()


async def increase_available_copies(db: AsyncSession, book_id: int, *, commit: bool = True) -> None:
    stmt = (
        update(Book)
        .where(and_(Book.id == book_id, Book.available_copies < Book.total_copies))
        .values(available_copies=Book.available_copies + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0 and await get_book(db, book_id) is None:
        raise NotFoundError(f"Book not found with id: {book_id}")
    if commit:
        await db.commit()


async def update_book_rating(db: AsyncSession, book_id: int, *, commit: bool = True) -> Book:
    book = await get_book(db, book_id)
    if book is None:
        raise NotFoundError(f"Book not found with id: {book_id}")

    book.average_rating = await average_rating_for_book(db, book_id)
    book.rating_count = await count_ratings_for_book(db, book_id)
    if commit:
        await db.commit()
        await db.refresh(book)
    return book
