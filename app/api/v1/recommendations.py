from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import books_out
from app.db.session import get_db
from app.schemas.catalog import BookOut
from app.schemas.recommendation import DashboardOut
from app.services import recommendations

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("/user/{user_id}", response_model=list[BookOut])
async def recommendations_for_user(
    user_id: int,
    limit: int = Query(default=10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> list[BookOut]:
    rows = await recommendations.get_recommendations_for_user(db, user_id=user_id, limit=limit)
    return books_out(rows)


@router.get("/similar/{book_id}", response_model=list[BookOut])
async def similar_books(
    book_id: int,
    limit: int = Query(default=5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> list[BookOut]:
    return books_out(await recommendations.get_similar_books(db, book_id=book_id, limit=limit))


@router.get("/trending", response_model=list[BookOut])
async def trending_books(
    limit: int = Query(default=10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> list[BookOut]:
    return books_out(await recommendations.get_trending_books(db, limit=limit))


@router.get("/new-arrivals", response_model=list[BookOut])
async def new_arrivals(
    limit: int = Query(default=10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> list[BookOut]:
    return books_out(await recommendations.get_new_arrivals(db, limit=limit))


@router.get("/popular/{category}", response_model=list[BookOut])
async def popular_in_category(
    category: str,
    limit: int = Query(default=10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> list[BookOut]:
    return books_out(await recommendations.get_popular_in_category(db, category=category, limit=limit))


@router.get("/dashboard/{user_id}", response_model=DashboardOut)
async def personalized_dashboard(user_id: int, db: AsyncSession = Depends(get_db)) -> DashboardOut:
    dashboard = await recommendations.get_personalized_dashboard(db, user_id=user_id)
    return DashboardOut(
        recommendations=books_out(dashboard.recommendations),
        trending=books_out(dashboard.trending),
        new_arrivals=books_out(dashboard.new_arrivals),
        category_recommendations={
            category: books_out(rows) for category, rows in dashboard.category_recommendations.items()
        },
    )
