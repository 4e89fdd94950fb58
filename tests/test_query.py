"""Tests for Top-N story selection."""

import pytest

from best_stories.services.cache_lifecycle import CacheLifecycle
from best_stories.services.errors import CacheNotReady
from best_stories.services.query import get_top_stories
from best_stories.stores.story_cache import CacheState, StoryCache


def _ready_store(stories) -> StoryCache:
    store = StoryCache()
    for story in stories:
        store.upsert(story)
    store.transition(CacheState.BUILDING)
    store.transition(CacheState.READY)
    return store


def test_not_ready_raises_even_with_stories(make_story) -> None:
    store = StoryCache()
    store.upsert(make_story(1))
    with pytest.raises(CacheNotReady):
        get_top_stories(store, 10)


def test_building_is_not_ready(make_story) -> None:
    store = StoryCache()
    store.upsert(make_story(1))
    store.transition(CacheState.BUILDING)
    with pytest.raises(CacheNotReady):
        get_top_stories(store, 1)


@pytest.mark.asyncio
async def test_top_stories_after_build(make_story, fake_client_factory) -> None:
    client = fake_client_factory(
        ids=[10, 20],
        stories={10: make_story(10, score=5, title="A"), 20: make_story(20, score=9, title="B")},
    )
    lifecycle = CacheLifecycle(StoryCache(), client, concurrency_limit=10)
    await lifecycle.build()

    top_one = get_top_stories(lifecycle.store, 1)
    assert [(s.title, s.score) for s in top_one] == [("B", 9)]

    top_five = get_top_stories(lifecycle.store, 5)
    assert [s.id for s in top_five] == [20, 10]


def test_results_sorted_and_bounded(make_story) -> None:
    scores = [3, 17, 8, 17, 1, 42, 8]
    store = _ready_store([make_story(i, score=s) for i, s in enumerate(scores, 1)])
    snapshot_ids = {s.id for s in store.snapshot()}

    for count in range(0, len(scores) + 3):
        top = get_top_stories(store, count)
        assert len(top) == min(count, len(scores))
        assert [s.score for s in top] == sorted((s.score for s in top), reverse=True)
        assert {s.id for s in top} <= snapshot_ids


def test_equal_scores_keep_snapshot_order(make_story) -> None:
    store = _ready_store([make_story(5, score=10), make_story(3, score=10), make_story(9, score=10)])

    first = get_top_stories(store, 3)
    second = get_top_stories(store, 3)

    assert [s.id for s in first] == [5, 3, 9]
    assert first == second


def test_zero_count_returns_empty_list(make_story) -> None:
    store = _ready_store([make_story(1)])
    assert get_top_stories(store, 0) == []


def test_negative_count_is_rejected(make_story) -> None:
    store = _ready_store([make_story(1)])
    with pytest.raises(ValueError):
        get_top_stories(store, -1)


def test_ready_while_refreshing_serves_snapshot(make_story) -> None:
    store = _ready_store([make_story(1, score=1)])
    store.transition(CacheState.REFRESHING)
    store.upsert(make_story(2, score=2))

    assert [s.id for s in get_top_stories(store, 2)] == [2, 1]
