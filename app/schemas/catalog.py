from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class BookIn(BaseModel):
    """Full replacement payload, used for both create and update."""

    title: str = Field(min_length=1, max_length=500)
    author: str = Field(min_length=1, max_length=300)
    isbn: str = Field(min_length=1, max_length=32)
    description: str | None = None
    category: str = Field(min_length=1, max_length=120)
    publisher: str | None = Field(default=None, max_length=255)
    publication_year: int | None = None
    page_count: int | None = Field(default=None, ge=0)
    language: str | None = Field(default=None, max_length=40)
    cover_image_url: str | None = Field(default=None, max_length=1200)
    available_copies: int = Field(ge=0)
    total_copies: int = Field(ge=0)


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    isbn: str
    description: str | None = None
    category: str
    publisher: str | None = None
    publication_year: int | None = None
    page_count: int | None = None
    language: str | None = None
    cover_image_url: str | None = None
    available_copies: int
    total_copies: int
    average_rating: float | None = None
    rating_count: int = 0
    created_at: datetime
    updated_at: datetime


class BookPageOut(BaseModel):
    page: int
    size: int
    total: int
    total_pages: int
    items: list[BookOut]


class BookFilters(BaseModel):
    title: str | None = None
    author: str | None = None
    category: str | None = None
    language: str | None = None
    isbn: str | None = None
    publisher: str | None = None
    min_year: int | None = None
    max_year: int | None = None
    min_rating: float | None = None
    max_rating: float | None = None
    available_only: bool = False


class RatingIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: str | None = Field(default=None, max_length=6000)


class RatingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    book_id: int
    rating: int
    review: str | None = None
    created_at: datetime
    updated_at: datetime


class BorrowIn(BaseModel):
    loan_days: int | None = Field(default=None, ge=1, le=90)


class BorrowRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    book_id: int
    borrow_date: date
    due_date: date
    return_date: date | None = None
    status: str
    fine_amount: float
