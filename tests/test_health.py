"""Tests for health and best stories endpoints."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from best_stories.main import create_app
from best_stories.services.cache_lifecycle import CacheLifecycle
from best_stories.services.hacker_news_client import HackerNewsClient
from best_stories.stores.story_cache import CacheState


@pytest.fixture
def app():
    """Create a fresh app; the cache loop only runs under a lifespan."""
    return create_app()


@pytest.fixture
async def client(app):
    """Create test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac


def _make_ready(app, stories) -> None:
    store = app.state.story_cache
    for story in stories:
        store.upsert(story)
    store.transition(CacheState.BUILDING)
    store.transition(CacheState.READY)


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health endpoint returns ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_best_stories_before_build_is_retryable_503(client: AsyncClient):
    response = await client.get("/api/beststories", params={"count": 5})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "5"
    body = response.json()
    assert body["error"]["code"] == "CACHE_NOT_READY"


@pytest.mark.asyncio
async def test_best_stories_returns_shaped_summaries(app, client: AsyncClient, make_story):
    _make_ready(
        app,
        [make_story(10, score=5, title="A"), make_story(20, score=9, title="B")],
    )

    response = await client.get("/api/beststories", params={"count": 1})
    assert response.status_code == 200
    assert response.json() == [
        {
            "title": "B",
            "uri": "https://example.com/20",
            "postedBy": "user20",
            "time": 1_700_000_020,
            "score": 9,
            "commentCount": 20 % 7,
        }
    ]

    response = await client.get("/api/beststories", params={"count": 5})
    assert [s["title"] for s in response.json()] == ["B", "A"]


@pytest.mark.asyncio
async def test_best_stories_rejects_negative_count(app, client: AsyncClient, make_story):
    _make_ready(app, [make_story(1)])
    response = await client.get("/api/beststories", params={"count": -1})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unexpected_error_is_generic_500(app, client: AsyncClient, monkeypatch: pytest.MonkeyPatch):
    from best_stories.routes import stories as stories_routes

    def broken_get_top_stories(store, count):
        raise RuntimeError("boom")

    monkeypatch.setattr(stories_routes, "get_top_stories", broken_get_top_stories)

    response = await client.get("/api/beststories")
    assert response.status_code == 500
    assert response.json()["error"] == {
        "code": "INTERNAL_ERROR",
        "message": "Internal server error",
        "detail": None,
    }


@pytest.mark.asyncio
async def test_cache_health_reports_state(app, client: AsyncClient, make_story):
    response = await client.get("/health/cache")
    assert response.json() == {"state": "uninitialized", "ready": False, "stories": 0}

    _make_ready(app, [make_story(1), make_story(2)])
    response = await client.get("/health/cache")
    assert response.json() == {"state": "ready", "ready": True, "stories": 2}


@pytest.mark.asyncio
async def test_internal_value_error_is_generic_500(app, client: AsyncClient, monkeypatch: pytest.MonkeyPatch):
    from best_stories.routes import stories as stories_routes

    def broken_get_top_stories(store, count):
        raise ValueError("internal invariant broken")

    monkeypatch.setattr(stories_routes, "get_top_stories", broken_get_top_stories)

    response = await client.get("/api/beststories")
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"
    assert "invariant" not in response.text


@pytest.mark.asyncio
async def test_upstream_item_with_negative_comment_count_is_not_served(app, client: AsyncClient):
    items = {
        7: {"id": 7, "title": "Bad", "by": "a", "time": 1, "score": 50, "descendants": -1},
        8: {"id": 8, "title": "Good", "by": "b", "time": 2, "score": 10, "descendants": 3},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("beststories.json"):
            return httpx.Response(200, json=[7, 8])
        story_id = int(request.url.path.rsplit("/", 1)[-1].removesuffix(".json"))
        return httpx.Response(200, json=items[story_id])

    base_url = "https://hn.test/v0/"
    hn = HackerNewsClient(
        base_url=base_url,
        timeout=1.0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url),
    )
    lifecycle = CacheLifecycle(app.state.story_cache, hn, refresh_interval_seconds=3600)
    stats = await lifecycle.build()
    await hn.close()

    assert stats.failed_ids == [7]
    response = await client.get("/api/beststories", params={"count": 5})
    assert response.status_code == 200
    assert [s["title"] for s in response.json()] == ["Good"]
