from __future__ import annotations

import os
from collections.abc import AsyncIterator
from datetime import date, timedelta
from itertools import count

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "0")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.security import hash_password
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import Book, BorrowRecord, User

BASE = "http://test"
_isbn_seq = count(1)


@pytest.fixture
async def session_factory(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'library.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncIterator[AsyncClient]:
    async def _override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_book(db: AsyncSession):
    async def _make(**overrides) -> Book:
        n = next(_isbn_seq)
        values = {
            "title": f"Book {n}",
            "author": f"Author {n}",
            "isbn": f"978-0-{n:06d}",
            "category": "Fiction",
            "available_copies": 2,
            "total_copies": 3,
            "average_rating": None,
            "rating_count": 0,
        }
        values.update(overrides)
        book = Book(**values)
        db.add(book)
        await db.commit()
        await db.refresh(book)
        return book

    return _make


@pytest.fixture
def make_user(db: AsyncSession):
    async def _make(username: str | None = None, *, password: str = "secret123", role: str = "USER") -> User:
        name = username or f"reader{next(_isbn_seq)}"
        user = User(
            username=name,
            email=f"{name}@example.com",
            hashed_password=hash_password(password),
            first_name="Test",
            last_name="Reader",
            role=role,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
def add_borrow(db: AsyncSession):
    """Insert a borrow record directly, bypassing copy counters."""

    async def _add(user: User, book: Book, *, status: str = "RETURNED") -> BorrowRecord:
        record = BorrowRecord(
            user_id=user.id,
            book_id=book.id,
            borrow_date=date(2026, 1, 1),
            due_date=date(2026, 1, 1) + timedelta(days=14),
            status=status,
        )
        db.add(record)
        await db.commit()
        return record

    return _add


@pytest.fixture
def login(client: AsyncClient):
    async def _login(username: str, password: str = "secret123") -> dict[str, str]:
        resp = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
