"""Dashboard API Routes Package

This module aggregates all route handlers into a single router
that can be included in the main FastAPI application.
"""

from fastapi import APIRouter

from .push import router as push_router


# Create main API router
api_router = APIRouter(prefix="/api")

api_router.include_router(push_router, prefix="/push", tags=["push"])

__all__ = ["api_router"]
