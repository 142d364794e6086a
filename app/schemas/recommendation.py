from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.catalog import BookOut


class DashboardOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recommendations: list[BookOut] = Field(default_factory=list)
    trending: list[BookOut] = Field(default_factory=list)
    new_arrivals: list[BookOut] = Field(default_factory=list, alias="newArrivals")
    category_recommendations: dict[str, list[BookOut]] = Field(
        default_factory=dict,
        alias="categoryRecommendations",
    )
