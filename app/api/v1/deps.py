from __future__ import annotations

from collections.abc import Iterable

from fastapi import Query

from app.models.catalog import Book
from app.schemas.catalog import BookOut
from app.services.catalog import SORTABLE_COLUMNS, cover_url_for


def book_out(row: Book) -> BookOut:
    out = BookOut.model_validate(row)
    out.cover_image_url = cover_url_for(row)
    return out


def books_out(rows: Iterable[Book]) -> list[BookOut]:
    return [book_out(x) for x in rows]


class PageParams:
    def __init__(
        self,
        page: int = Query(default=0, ge=0),
        size: int = Query(default=12, ge=1, le=100),
        sort_by: str = Query(default="title"),
        sort_dir: str = Query(default="asc"),
    ) -> None:
        self.page = page
        self.size = size
        self.sort_by = sort_by if sort_by in SORTABLE_COLUMNS else "title"
        self.sort_dir = "desc" if sort_dir.lower() == "desc" else "asc"

    def as_kwargs(self) -> dict:
        return {"page": self.page, "size": self.size, "sort_by": self.sort_by, "sort_dir": self.sort_dir}
