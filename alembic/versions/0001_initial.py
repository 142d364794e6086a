"""library catalog schema: books, users, ratings, borrow records

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-19
"""

from alembic import op

from app.db.base import Base
from app.models import Book, BorrowRecord, Rating, User

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

# Creation order follows foreign keys.
TABLES = [User.__table__, Book.__table__, Rating.__table__, BorrowRecord.__table__]


def upgrade() -> None:
    Base.metadata.create_all(bind=op.get_bind(), tables=TABLES)


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind(), tables=list(reversed(TABLES)))
