from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import PageParams, book_out, books_out
from app.core.errors import NotFoundError
from app.db.session import get_db
from app.schemas.catalog import (
    BookFilters,
    BookIn,
    BookOut,
    BookPageOut,
    BorrowIn,
    BorrowRecordOut,
    RatingIn,
    RatingOut,
)
from app.services import borrowing, catalog, ratings
from app.services.auth import AuthUser, get_current_staff, get_current_user

router = APIRouter(prefix="/books", tags=["books"])


def _page_out(rows, total: int, total_pages: int, params: PageParams) -> BookPageOut:
    return BookPageOut(
        page=params.page,
        size=params.size,
        total=total,
        total_pages=total_pages,
        items=books_out(rows),
    )


@router.get("", response_model=BookPageOut)
async def list_books(params: PageParams = Depends(), db: AsyncSession = Depends(get_db)) -> BookPageOut:
    rows, total, total_pages = await catalog.page_books(db, **params.as_kwargs())
    return _page_out(rows, total, total_pages, params)


@router.get("/search", response_model=BookPageOut)
async def search_books(
    q: str | None = Query(default=None),
    title: str | None = Query(default=None),
    author: str | None = Query(default=None),
    category: str | None = Query(default=None),
    language: str | None = Query(default=None),
    isbn: str | None = Query(default=None),
    publisher: str | None = Query(default=None),
    min_year: int | None = Query(default=None),
    max_year: int | None = Query(default=None),
    min_rating: float | None = Query(default=None, ge=0, le=5),
    max_rating: float | None = Query(default=None, ge=0, le=5),
    available_only: bool = Query(default=False),
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> BookPageOut:
    if q and q.strip():
        rows, total, total_pages = await catalog.search_books(db, q, **params.as_kwargs())
    else:
        filters = BookFilters(
            title=title,
            author=author,
            category=category,
            language=language,
            isbn=isbn,
            publisher=publisher,
            min_year=min_year,
            max_year=max_year,
            min_rating=min_rating,
            max_rating=max_rating,
            available_only=available_only,
        )
        rows, total, total_pages = await catalog.filter_books(db, filters, **params.as_kwargs())
    return _page_out(rows, total, total_pages, params)


@router.get("/available", response_model=BookPageOut)
async def available_books(params: PageParams = Depends(), db: AsyncSession = Depends(get_db)) -> BookPageOut:
    rows, total, total_pages = await catalog.filter_books(
        db, BookFilters(available_only=True), **params.as_kwargs()
    )
    return _page_out(rows, total, total_pages, params)


@router.get("/top-rated", response_model=BookPageOut)
async def top_rated_books(params: PageParams = Depends(), db: AsyncSession = Depends(get_db)) -> BookPageOut:
    # Rating order is fixed here; only page and size come from the query.
    params.sort_by, params.sort_dir = "average_rating", "desc"
    rows, total, total_pages = await catalog.page_books(db, **params.as_kwargs())
    return _page_out(rows, total, total_pages, params)


@router.get("/categories", response_model=list[str])
async def categories(db: AsyncSession = Depends(get_db)) -> list[str]:
    return await catalog.list_categories(db)


@router.get("/languages", response_model=list[str])
async def languages(db: AsyncSession = Depends(get_db)) -> list[str]:
    return await catalog.list_languages(db)


@router.get("/publishers", response_model=list[str])
async def publishers(db: AsyncSession = Depends(get_db)) -> list[str]:
    return await catalog.list_publishers(db)


@router.get("/category/{category}", response_model=list[BookOut])
async def books_in_category(category: str, db: AsyncSession = Depends(get_db)) -> list[BookOut]:
    return books_out(await catalog.find_books_by_category(db, category))


@router.get("/isbn/{isbn}", response_model=BookOut)
async def get_book_by_isbn(isbn: str, db: AsyncSession = Depends(get_db)) -> BookOut:
    row = await catalog.get_book_by_isbn(db, isbn)
    if row is None:
        raise NotFoundError("Book not found")
    return book_out(row)


@router.get("/{book_id}", response_model=BookOut)
async def get_book(book_id: int, db: AsyncSession = Depends(get_db)) -> BookOut:
    row = await catalog.get_book(db, book_id)
    if row is None:
        raise NotFoundError("Book not found")
    return book_out(row)


@router.get("/{book_id}/availability", response_model=bool)
async def book_availability(book_id: int, db: AsyncSession = Depends(get_db)) -> bool:
    return await catalog.is_book_available(db, book_id)


@router.post("", response_model=BookOut, status_code=status.HTTP_201_CREATED)
async def create_book(
    payload: BookIn,
    db: AsyncSession = Depends(get_db),
    _staff: AuthUser = Depends(get_current_staff),
) -> BookOut:
    return book_out(await catalog.create_book(db, payload))


@router.put("/{book_id}", response_model=BookOut)
async def update_book(
    book_id: int,
    payload: BookIn,
    db: AsyncSession = Depends(get_db),
    _staff: AuthUser = Depends(get_current_staff),
) -> BookOut:
    return book_out(await catalog.update_book(db, book_id, payload))


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    _staff: AuthUser = Depends(get_current_staff),
) -> Response:
    await catalog.delete_book(db, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Ratings ──────────────────────────────────────────


@router.get("/{book_id}/ratings", response_model=list[RatingOut])
async def book_ratings(book_id: int, db: AsyncSession = Depends(get_db)) -> list[RatingOut]:
    rows = await ratings.list_ratings_for_book(db, book_id)
    return [RatingOut.model_validate(x) for x in rows]


@router.get("/{book_id}/reviews", response_model=list[RatingOut])
async def book_reviews(book_id: int, db: AsyncSession = Depends(get_db)) -> list[RatingOut]:
    rows = await ratings.list_reviews_for_book(db, book_id)
    return [RatingOut.model_validate(x) for x in rows]


@router.post("/{book_id}/ratings", response_model=RatingOut, status_code=status.HTTP_201_CREATED)
async def rate_book(
    book_id: int,
    payload: RatingIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> RatingOut:
    row = await ratings.rate_book(
        db,
        user_id=current_user.user_id,
        book_id=book_id,
        rating=payload.rating,
        review=payload.review,
    )
    return RatingOut.model_validate(row)


@router.delete("/{book_id}/ratings", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rating(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> Response:
    await ratings.delete_rating(db, user_id=current_user.user_id, book_id=book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Borrowing ────────────────────────────────────────


@router.post("/{book_id}/borrow", response_model=BorrowRecordOut, status_code=status.HTTP_201_CREATED)
async def borrow_book(
    book_id: int,
    payload: BorrowIn | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> BorrowRecordOut:
    row = await borrowing.borrow_book(
        db,
        user_id=current_user.user_id,
        book_id=book_id,
        loan_days=payload.loan_days if payload else None,
    )
    return BorrowRecordOut.model_validate(row)


@router.post("/{book_id}/return", response_model=BorrowRecordOut)
async def return_book(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> BorrowRecordOut:
    row = await borrowing.return_book(db, user_id=current_user.user_id, book_id=book_id)
    return BorrowRecordOut.model_validate(row)
