"""Rule-based recommendations built from catalog signals.

Every list is assembled in insertion order from progressively weaker
signals and deduplicated by book id. Unknown users or books never raise;
they just produce fewer (or zero) suggestions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Book
from app.services import catalog

logger = logging.getLogger(__name__)

DEFAULT_RECOMMENDATION_SIZE = 10
DEFAULT_SIMILAR_SIZE = 5
PER_CATEGORY_FETCH = 3
SAME_AUTHOR_FETCH = 3
MIN_RATING_THRESHOLD = 4.0

DASHBOARD_SECTION_SIZE = 6
DASHBOARD_CATEGORY_COUNT = 3
DASHBOARD_BOOKS_PER_CATEGORY = 4


@dataclass(slots=True)
class Dashboard:
    recommendations: list[Book]
    trending: list[Book]
    new_arrivals: list[Book]
    category_recommendations: dict[str, list[Book]] = field(default_factory=dict)


class _OrderedBookSet:
    """Insertion-ordered set of books keyed by id."""

    def __init__(self) -> None:
        self._books: dict[int, Book] = {}

    def __len__(self) -> int:
        return len(self._books)

    def add_all(self, books: Iterable[Book]) -> None:
        for book in books:
            self._books.setdefault(book.id, book)

    def fill(self, books: Iterable[Book], limit: int) -> None:
        for book in books:
            if len(self._books) >= limit:
                return
            self._books.setdefault(book.id, book)

    def to_list(self) -> list[Book]:
        return list(self._books.values())


async def get_recommendations_for_user(
    db: AsyncSession,
    *,
    user_id: int,
    limit: int = DEFAULT_RECOMMENDATION_SIZE,
) -> list[Book]:
    if limit <= 0:
        return []

    picked = _OrderedBookSet()

    preferred_categories = await catalog.find_user_preferred_categories(db, user_id)
    for category in preferred_categories:
        picked.add_all(
            await catalog.find_recommended_books_by_category(db, category=category, limit=PER_CATEGORY_FETCH)
        )
        if len(picked) >= limit:
            break

    if len(picked) < limit:
        picked.fill(await catalog.find_books_by_min_rating(db, threshold=MIN_RATING_THRESHOLD), limit)

    if len(picked) < limit:
        # Over-fetch by the current size so duplicates cannot starve the pass.
        picked.fill(await catalog.find_available_books(db, limit=limit + len(picked)), limit)

    available = [book for book in picked.to_list() if book.available_copies > 0]
    if not preferred_categories:
        logger.debug("No borrow history for user %s, using rating and availability signals", user_id)
    return available[:limit]


async def get_similar_books(
    db: AsyncSession,
    *,
    book_id: int,
    limit: int = DEFAULT_SIMILAR_SIZE,
) -> list[Book]:
    if limit <= 0:
        return []

    book = await catalog.get_book(db, book_id)
    if book is None:
        logger.debug("Similar books requested for unknown book %s", book_id)
        return []

    picked = _OrderedBookSet()
    picked.add_all(
        await catalog.find_books_by_author_excluding(
            db, author=book.author, exclude_id=book.id, limit=SAME_AUTHOR_FETCH
        )
    )

    if len(picked) < limit:
        same_category = await catalog.find_recommended_books_by_category(
            db, category=book.category, limit=limit + len(picked) + 1
        )
        picked.fill((x for x in same_category if x.id != book.id), limit)

    return picked.to_list()[:limit]


async def get_trending_books(db: AsyncSession, *, limit: int = DEFAULT_RECOMMENDATION_SIZE) -> list[Book]:
    # Same ordering as top-rated; there is no recency or velocity signal yet.
    if limit <= 0:
        return []
    return await catalog.find_top_rated_books(db, limit=limit)


async def get_new_arrivals(db: AsyncSession, *, limit: int = DEFAULT_RECOMMENDATION_SIZE) -> list[Book]:
    if limit <= 0:
        return []
    return await catalog.find_recent_books(db, limit=limit)


async def get_popular_in_category(
    db: AsyncSession,
    *,
    category: str,
    limit: int = DEFAULT_RECOMMENDATION_SIZE,
) -> list[Book]:
    if limit <= 0:
        return []
    return await catalog.find_recommended_books_by_category(db, category=category, limit=limit)


async def get_personalized_dashboard(db: AsyncSession, *, user_id: int) -> Dashboard:
    preferred_categories = await catalog.find_user_preferred_categories(db, user_id)

    category_recommendations: dict[str, list[Book]] = {}
    for category in preferred_categories[:DASHBOARD_CATEGORY_COUNT]:
        category_recommendations[category] = await get_popular_in_category(
            db, category=category, limit=DASHBOARD_BOOKS_PER_CATEGORY
        )

    return Dashboard(
        recommendations=await get_recommendations_for_user(db, user_id=user_id, limit=DASHBOARD_SECTION_SIZE),
        trending=await get_trending_books(db, limit=DASHBOARD_SECTION_SIZE),
        new_arrivals=await get_new_arrivals(db, limit=DASHBOARD_SECTION_SIZE),
        category_recommendations=category_recommendations,
    )
