"""API routes for case comment threads."""

from fastapi import APIRouter

from .comments import router as comments_router
from .notifications import router as notifications_router
from .realtime import router as realtime_router
from .tickets import router as tickets_router

# Main API router
api_router = APIRouter()

api_router.include_router(comments_router)
api_router.include_router(tickets_router)
api_router.include_router(notifications_router)
api_router.include_router(realtime_router)

__all__ = ["api_router"]
