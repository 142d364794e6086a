from app.models.catalog import Book, BorrowRecord, Rating
from app.models.user import User

__all__ = [
    "Book",
    "BorrowRecord",
    "Rating",
    "User",
]
