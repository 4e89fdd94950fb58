"""Best stories endpoints.

GET /api/beststories?count=N - Top-N cached stories by score.
GET /health/cache            - Cache readiness.

Routers are thin: call services for business logic. The story cache is
taken from app state via a dependency, never from a module global.
"""

from fastapi import APIRouter, Depends, Query, Request

from best_stories.schemas import CacheStatus, ErrorResponse, StorySummary
from best_stories.services.query import get_top_stories
from best_stories.stores.story_cache import StoryCache

router = APIRouter()
health_router = APIRouter()


def get_story_cache(request: Request) -> StoryCache:
    """Return the process-wide story cache built by create_app()."""
    return request.app.state.story_cache


@router.get(
    "/beststories",
    response_model=list[StorySummary],
    responses={503: {"model": ErrorResponse, "description": "Cache not ready yet, retry later"}},
)
async def get_best_stories(
    count: int = Query(
        default=10,
        ge=0,
        description="Number of stories to return, highest score first",
        examples=[10],
    ),
    store: StoryCache = Depends(get_story_cache),
) -> list[StorySummary]:
    """Get the best stories.

    Returns:
        Up to `count` stories sorted by score descending.
    """
    stories = get_top_stories(store, count)
    return [StorySummary.from_story(s) for s in stories]


@health_router.get("/health/cache", response_model=CacheStatus)
async def cache_health(store: StoryCache = Depends(get_story_cache)) -> CacheStatus:
    """Cache readiness check - no upstream calls."""
    return CacheStatus(state=store.state.value, ready=store.is_ready(), stories=len(store))
