from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.api.v1.books import router as books_router
from app.api.v1.borrows import router as borrows_router
from app.api.v1.recommendations import router as recommendations_router
from app.api.v1.users import router as users_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(books_router)
api_router.include_router(borrows_router)
api_router.include_router(recommendations_router)
