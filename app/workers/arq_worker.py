from __future__ import annotations

import logging

from arq.connections import RedisSettings
from arq.cron import cron
from sqlalchemy import select

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.models.catalog import Book
from app.services.borrowing import mark_overdue_records
from app.services.catalog import update_book_rating

logger = logging.getLogger(__name__)


async def mark_overdue_borrows_job(ctx) -> dict:
    async with SessionLocal() as db:
        changed = await mark_overdue_records(db)
    if changed:
        logger.info("Marked %s borrow records as overdue", changed)
    return {"overdue_marked": changed}


async def recompute_book_ratings_job(ctx) -> dict:
    total = 0
    failed = 0
    async with SessionLocal() as db:
        book_ids = (await db.execute(select(Book.id).order_by(Book.id))).scalars().all()
        for book_id in book_ids:
            try:
                await update_book_rating(db, book_id)
                total += 1
            except Exception:
                failed += 1
                await db.rollback()
                logger.exception("Rating recompute failed for book_id=%s", book_id)
    logger.info("Recomputed ratings for %s books (%s failed)", total, failed)
    return {"books_recomputed": total, "failed": failed}


async def startup(ctx) -> None:
    configure_logging()


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    functions = [mark_overdue_borrows_job, recompute_book_ratings_job]
    on_startup = startup
    cron_jobs = [
        cron(mark_overdue_borrows_job, minute={5}),
        cron(recompute_book_ratings_job, hour={3}, minute={30}),
    ]
