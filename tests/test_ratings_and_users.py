import asyncio

import pytest

from app.core.errors import ConflictError
from app.schemas.user import UserCreateIn
from app.services import catalog, ratings, users


async def _in_own_session(session_factory, fn, **kwargs):
    async with session_factory() as session:
        return await fn(session, **kwargs)


async def test_rating_again_replaces_score_and_review(db, make_book, make_user) -> None:
    user = await make_user()
    book = await make_book()

    await ratings.rate_book(db, user_id=user.id, book_id=book.id, rating=2, review="Slow start")
    row = await ratings.rate_book(db, user_id=user.id, book_id=book.id, rating=5, review="  ")

    assert row.rating == 5
    assert row.review is None
    assert len(await ratings.list_ratings_for_book(db, book.id)) == 1
    refreshed = await catalog.get_book(db, book.id)
    assert refreshed.rating_count == 1
    assert refreshed.average_rating == 5.0


async def test_concurrent_first_ratings_keep_a_single_row(session_factory, make_book, make_user) -> None:
    user = await make_user()
    book = await make_book()
    user_id, book_id = user.id, book.id

    results = await asyncio.gather(
        _in_own_session(session_factory, ratings.rate_book, user_id=user_id, book_id=book_id, rating=4),
        _in_own_session(session_factory, ratings.rate_book, user_id=user_id, book_id=book_id, rating=5),
        return_exceptions=True,
    )

    assert [type(r).__name__ for r in results] == ["Rating", "Rating"]
    async with session_factory() as session:
        rows = await ratings.list_ratings_for_book(session, book_id)
        refreshed = await catalog.get_book(session, book_id)
    assert len(rows) == 1
    assert rows[0].rating in {4, 5}
    assert refreshed.rating_count == 1
    assert refreshed.average_rating == float(rows[0].rating)


async def test_register_conflicts_when_username_and_email_belong_to_different_users(db, make_user) -> None:
    await make_user("alice")
    await make_user("bob")

    with pytest.raises(ConflictError):
        await users.create_user(
            db, UserCreateIn(username="alice", email="bob@example.com", password="secret123")
        )


async def test_concurrent_registration_yields_one_user(session_factory) -> None:
    payload = UserCreateIn(username="twin", email="twin@example.com", password="secret123")

    results = await asyncio.gather(
        _in_own_session(session_factory, users.create_user, data=payload),
        _in_own_session(session_factory, users.create_user, data=payload),
        return_exceptions=True,
    )

    assert sorted(type(r).__name__ for r in results) == ["ConflictError", "User"]
    async with session_factory() as session:
        assert await users.get_user_by_username(session, "twin") is not None
