import pytest

from app.services import recommendations


async def test_user_without_history_uses_rating_then_availability(db, make_book, make_user) -> None:
    user = await make_user()
    high = await make_book(title="High", average_rating=4.8)
    mid = await make_book(title="Mid", average_rating=4.2)
    await make_book(title="Low", average_rating=3.0)
    unrated = await make_book(title="Unrated")

    rows = await recommendations.get_recommendations_for_user(db, user_id=user.id, limit=10)

    ids = [b.id for b in rows]
    assert ids[:2] == [high.id, mid.id]
    assert unrated.id in ids
    assert len(ids) == len(set(ids)) == 4
    assert all(b.available_copies > 0 for b in rows)


async def test_user_without_history_caps_at_limit(db, make_book, make_user) -> None:
    user = await make_user()
    for i in range(14):
        await make_book(average_rating=4.0 + (i % 10) / 10)

    rows = await recommendations.get_recommendations_for_user(db, user_id=user.id, limit=10)

    assert len(rows) == 10
    assert len({b.id for b in rows}) == 10


async def test_preferred_categories_come_first(db, make_book, make_user, add_borrow) -> None:
    user = await make_user()
    read = await make_book(category="Fantasy", average_rating=3.5)
    f1 = await make_book(category="Fantasy", average_rating=4.9)
    f2 = await make_book(category="Fantasy", average_rating=2.0)
    await make_book(category="Fantasy")
    top_other = await make_book(category="Horror", average_rating=5.0)
    await add_borrow(user, read)

    rows = await recommendations.get_recommendations_for_user(db, user_id=user.id, limit=5)
    ids = [b.id for b in rows]

    assert ids[:3] == [f1.id, read.id, f2.id]
    assert top_other.id in ids
    assert len(ids) == 5


async def test_unavailable_books_are_filtered_out_at_the_end(db, make_book, make_user, add_borrow) -> None:
    user = await make_user()
    gone = await make_book(category="Poetry", average_rating=5.0, available_copies=0)
    kept = await make_book(category="Poetry", average_rating=4.0)
    also_gone = await make_book(category="Drama", average_rating=4.5, available_copies=0)
    await add_borrow(user, gone)

    rows = await recommendations.get_recommendations_for_user(db, user_id=user.id, limit=10)
    ids = [b.id for b in rows]

    assert gone.id not in ids
    assert also_gone.id not in ids
    assert kept.id in ids
    assert all(b.available_copies > 0 for b in rows)


@pytest.mark.parametrize("limit", [1, 2, 3, 5, 8])
async def test_recommendations_never_exceed_limit_or_repeat(db, make_book, make_user, add_borrow, limit) -> None:
    user = await make_user()
    books = []
    for i, category in enumerate(["Fantasy", "Fantasy", "Horror", "Horror", "Poetry", "Fiction", "Fiction"]):
        books.append(await make_book(category=category, average_rating=3.5 + i * 0.25))
    await add_borrow(user, books[0])
    await add_borrow(user, books[2])

    rows = await recommendations.get_recommendations_for_user(db, user_id=user.id, limit=limit)
    ids = [b.id for b in rows]

    assert len(ids) <= limit
    assert len(ids) == len(set(ids))


async def test_unknown_user_gets_generic_recommendations(db, make_book) -> None:
    book = await make_book(average_rating=4.5)
    rows = await recommendations.get_recommendations_for_user(db, user_id=9999, limit=3)
    assert [b.id for b in rows] == [book.id]


async def test_similar_books_for_unknown_book_is_empty(db) -> None:
    assert await recommendations.get_similar_books(db, book_id=12345, limit=5) == []


async def test_similar_books_author_then_category(db, make_book) -> None:
    source = await make_book(author="J.R.R. Tolkien", category="Fantasy", average_rating=4.9)
    same_author = await make_book(author="J.R.R. Tolkien", category="Fantasy", average_rating=4.7)
    same_category = await make_book(author="C.S. Lewis", category="Fantasy", average_rating=4.1)
    unrelated = await make_book(author="Bram Stoker", category="Horror", average_rating=5.0)

    rows = await recommendations.get_similar_books(db, book_id=source.id, limit=5)
    ids = [b.id for b in rows]

    assert ids == [same_author.id, same_category.id]
    assert source.id not in ids
    assert unrelated.id not in ids


async def test_similar_books_unique_author_and_category(db, make_book) -> None:
    await make_book(author="Someone Else", category="Fiction")
    lonely = await make_book(author="Only Author", category="Cookbooks")

    assert await recommendations.get_similar_books(db, book_id=lonely.id, limit=5) == []


async def test_similar_books_ignore_availability(db, make_book) -> None:
    source = await make_book(author="Jane Austen", category="Romance")
    out_of_stock = await make_book(author="Jane Austen", category="Romance", available_copies=0)

    rows = await recommendations.get_similar_books(db, book_id=source.id, limit=5)
    assert [b.id for b in rows] == [out_of_stock.id]


async def test_similar_books_respects_limit(db, make_book) -> None:
    source = await make_book(author="Ann", category="Drama")
    for _ in range(6):
        await make_book(author="Ann", category="Drama")
    for _ in range(4):
        await make_book(author="Bob", category="Drama", average_rating=4.0)

    rows = await recommendations.get_similar_books(db, book_id=source.id, limit=5)
    ids = [b.id for b in rows]
    assert len(ids) == 5
    assert len(set(ids)) == 5
    assert source.id not in ids


async def test_trending_orders_by_rating_with_unrated_last(db, make_book) -> None:
    unrated = await make_book()
    low = await make_book(average_rating=2.5)
    high = await make_book(average_rating=4.9)

    rows = await recommendations.get_trending_books(db, limit=10)
    assert [b.id for b in rows] == [high.id, low.id, unrated.id]


async def test_new_arrivals_most_recent_first(db, make_book) -> None:
    first = await make_book()
    second = await make_book()
    third = await make_book()

    rows = await recommendations.get_new_arrivals(db, limit=2)
    assert [b.id for b in rows] == [third.id, second.id]
    assert first.id not in [b.id for b in rows]


async def test_popular_in_category(db, make_book) -> None:
    ratings = [3.1, None, 4.4, 4.9, 2.0, 3.9]
    for r in ratings:
        await make_book(category="Fantasy", average_rating=r)
    await make_book(category="Horror", average_rating=5.0)

    rows = await recommendations.get_popular_in_category(db, category="Fantasy", limit=4)

    assert len(rows) == 4
    assert all(b.category == "Fantasy" for b in rows)
    assert [b.average_rating for b in rows] == [4.9, 4.4, 3.9, 3.1]


async def test_dashboard_without_history(db, make_book, make_user) -> None:
    user = await make_user()
    await make_book(average_rating=4.5)

    dashboard = await recommendations.get_personalized_dashboard(db, user_id=user.id)

    assert len(dashboard.recommendations) == 1
    assert len(dashboard.trending) == 1
    assert len(dashboard.new_arrivals) == 1
    assert dashboard.category_recommendations == {}


async def test_dashboard_uses_top_three_categories(db, make_book, make_user, add_borrow) -> None:
    user = await make_user()
    for category in ["Fantasy", "Horror", "Poetry", "Drama"]:
        book = await make_book(category=category)
        for _ in range(5):
            await make_book(category=category)
        await add_borrow(user, book)

    dashboard = await recommendations.get_personalized_dashboard(db, user_id=user.id)

    assert list(dashboard.category_recommendations) == ["Fantasy", "Horror", "Poetry"]
    assert all(len(rows) == 4 for rows in dashboard.category_recommendations.values())
    assert len(dashboard.recommendations) == 6
