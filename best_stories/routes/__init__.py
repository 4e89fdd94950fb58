"""API routes."""

from fastapi import APIRouter

from best_stories.routes import stories

api_router = APIRouter()

# Read API (Top-N best stories)
api_router.include_router(stories.router, prefix="/api", tags=["stories"])

# Cache readiness
api_router.include_router(stories.health_router, tags=["health"])
