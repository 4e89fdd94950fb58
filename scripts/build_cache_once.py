#!/usr/bin/env python3
"""One-off cache build against the configured upstream.

Behavior:
- Fetch the best story IDs and every story (bounded concurrency)
- Print cycle stats and the Top-N stories, then exit

Run (local):
  HACKER_NEWS_API_URL=https://hacker-news.firebaseio.com/v0/ python -m scripts.build_cache_once

Optional env vars:
  TOP_COUNT=10
  FETCH_CONCURRENCY=100
"""

import asyncio
import os
import sys
from dataclasses import asdict


# Ensure imports work when executed as a script/module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from best_stories.schemas import StorySummary  # noqa: E402
from best_stories.services.cache_lifecycle import CacheLifecycle  # noqa: E402
from best_stories.services.errors import BuildFailed  # noqa: E402
from best_stories.services.hacker_news_client import HackerNewsClient  # noqa: E402
from best_stories.services.query import get_top_stories  # noqa: E402
from best_stories.settings import get_settings  # noqa: E402
from best_stories.stores.story_cache import StoryCache  # noqa: E402


async def main() -> int:
    settings = get_settings()
    top_count = int(os.getenv("TOP_COUNT", "10"))

    store = StoryCache()
    client = HackerNewsClient(
        base_url=settings.hacker_news_api_url,
        timeout=settings.upstream_timeout_seconds,
        max_connections=settings.fetch_concurrency,
    )
    lifecycle = CacheLifecycle.from_settings(store, client, settings)

    try:
        try:
            stats = await lifecycle.build()
        except BuildFailed as e:
            print({"ok": False, "error": str(e)})
            return 1

        top = get_top_stories(store, top_count)
        # Final output (single JSON-ish blob)
        print(
            {
                "ok": True,
                "build": asdict(stats),
                "cache": store.stats(),
                "top": [StorySummary.from_story(s).model_dump(by_alias=True) for s in top],
            }
        )
        return 0
    finally:
        await client.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
