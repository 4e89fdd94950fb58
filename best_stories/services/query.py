"""Query service for Top-N best stories.

Ranking logic:
1. Sort by score DESC
2. Equal scores keep snapshot order (stable sort), so one snapshot always
   yields the same response

Fails fast with CacheNotReady until the first build completed; never falls
back to an empty or partial list.
"""

from best_stories.models import Story
from best_stories.services.errors import CacheNotReady
from best_stories.stores.story_cache import StoryCache


def get_top_stories(store: StoryCache, count: int) -> list[Story]:
    """Get the `count` highest scored stories from the cache.

    Args:
        store: Story cache to read.
        count: Maximum number of stories to return (>= 0).

    Returns:
        Stories sorted by score descending, at most `count` of them.

    Raises:
        CacheNotReady: no build has completed yet.
        ValueError: `count` is negative.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    if not store.is_ready():
        raise CacheNotReady()

    snapshot = store.snapshot()
    return sorted(snapshot, key=lambda s: s.score, reverse=True)[:count]
