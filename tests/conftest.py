"""Shared fixtures: environment, story factory and a fake upstream client."""

import asyncio
import os
from collections.abc import Callable

import pytest

# Settings require an upstream URL; set it before the app module is imported.
os.environ.setdefault("HACKER_NEWS_API_URL", "https://hn.test/v0/")

from best_stories.models import Story  # noqa: E402
from best_stories.services.errors import UpstreamUnavailable  # noqa: E402


def _make_story(story_id: int, score: int = 1, title: str | None = None) -> Story:
    return Story(
        id=story_id,
        title=title if title is not None else f"Story {story_id}",
        url=f"https://example.com/{story_id}",
        by=f"user{story_id}",
        time=1_700_000_000 + story_id,
        score=score,
        descendants=story_id % 7,
    )


class FakeHackerNewsClient:
    """In-memory upstream with failure injection and call accounting."""

    def __init__(
        self,
        ids: list[int] | None = None,
        stories: dict[int, Story] | None = None,
        *,
        fail_ids: set[int] | None = None,
        ids_errors: list[Exception] | None = None,
        ids_delay: float = 0.0,
        story_delay: float = 0.0,
    ):
        self.ids = list(ids or [])
        self.stories = dict(stories or {})
        self.fail_ids = set(fail_ids or ())
        # Raised by successive fetch_best_story_ids() calls, then calls succeed.
        self.ids_errors = list(ids_errors or [])
        self.ids_delay = ids_delay
        self.story_delay = story_delay
        self.id_list_calls = 0
        self.story_calls: list[int] = []
        self.ids_in_flight = 0
        self.max_ids_in_flight = 0
        self.stories_in_flight = 0
        self.max_stories_in_flight = 0

    async def fetch_best_story_ids(self) -> list[int]:
        self.id_list_calls += 1
        self.ids_in_flight += 1
        self.max_ids_in_flight = max(self.max_ids_in_flight, self.ids_in_flight)
        try:
            await asyncio.sleep(self.ids_delay)
            if self.ids_errors:
                raise self.ids_errors.pop(0)
            return list(self.ids)
        finally:
            self.ids_in_flight -= 1

    async def fetch_story(self, story_id: int) -> Story:
        self.story_calls.append(story_id)
        self.stories_in_flight += 1
        self.max_stories_in_flight = max(self.max_stories_in_flight, self.stories_in_flight)
        try:
            await asyncio.sleep(self.story_delay)
            if story_id in self.fail_ids:
                raise UpstreamUnavailable(f"Upstream returned 500 for item/{story_id}.json")
            return self.stories[story_id]
        finally:
            self.stories_in_flight -= 1


@pytest.fixture
def make_story() -> Callable[..., Story]:
    return _make_story


@pytest.fixture
def fake_client_factory() -> Callable[..., FakeHackerNewsClient]:
    return FakeHackerNewsClient


@pytest.fixture
def wait_until():
    """Poll an async-side condition without blocking the event loop."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait_until
