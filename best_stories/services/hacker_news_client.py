"""Hacker News API client for the ranked ID list and story details.

Two resources are used:
- beststories.json: JSON array of story IDs, best first
- item/{id}.json: JSON object for a single story

No retries here. Transport problems surface as UpstreamUnavailable and
malformed payloads as DecodeError; callers decide what a failure means.
"""

import json
import logging
from typing import Any

import httpx

from best_stories.models import Story
from best_stories.services.errors import DecodeError, UpstreamUnavailable
from best_stories.settings import DEFAULT_FETCH_CONCURRENCY, get_settings

logger = logging.getLogger("uvicorn.error")

BEST_STORIES_PATH = "beststories.json"
ITEM_PATH = "item/{id}.json"


class HackerNewsClient:
    """Async client for the Hacker News Firebase API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        max_connections: int | None = None,
    ):
        """Initialize client with base URL and request timeout.

        Args:
            base_url: API root, e.g. "https://hacker-news.firebaseio.com/v0/".
            timeout: Per-request timeout in seconds.
            http_client: Pre-built client (tests inject one with a MockTransport).
            max_connections: Connection pool size; keep it at or above the
                fetch concurrency so queued fetches do not hit PoolTimeout.
        """
        if base_url is None or timeout is None:
            settings = get_settings()
            base_url = base_url or settings.hacker_news_api_url
            timeout = timeout or settings.upstream_timeout_seconds
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.max_connections = max_connections or DEFAULT_FETCH_CONCURRENCY
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            limits = httpx.Limits(max_connections=self.max_connections)
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                limits=limits,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_best_story_ids(self) -> list[int]:
        """Fetch the current ranked list of best story IDs.

        Returns:
            Story IDs in upstream rank order.

        Raises:
            UpstreamUnavailable: transport error, timeout or non-2xx status.
            DecodeError: body is not a JSON array of integers.
        """
        data = await self._get_json(BEST_STORIES_PATH)
        ids = _parse_story_ids(data)
        logger.info(f"Fetched {len(ids)} best story ids")
        return ids

    async def fetch_story(self, story_id: int) -> Story:
        """Fetch a single story by ID.

        Raises:
            UpstreamUnavailable: transport error, timeout or non-2xx status.
            DecodeError: body is null or not a story object.
        """
        data = await self._get_json(ITEM_PATH.format(id=story_id))
        return _parse_story(data, story_id=story_id)

    async def _get_json(self, path: str) -> Any:
        client = await self._get_client()
        try:
            response = await client.get(path)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timed out fetching {path}") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"Upstream returned {e.response.status_code} for {path}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Network error fetching {path}: {e}") from e

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Malformed JSON from {path}") from e


def _parse_story_ids(data: Any) -> list[int]:
    if not isinstance(data, list):
        raise DecodeError("Expected a JSON array of story ids")
    ids: list[int] = []
    for raw in data:
        # bool is an int subclass; reject it explicitly.
        if not isinstance(raw, int) or isinstance(raw, bool):
            raise DecodeError(f"Unexpected story id: {raw!r}")
        ids.append(raw)
    return ids


def _parse_story(data: Any, story_id: int | None = None) -> Story:
    if data is None:
        # The API answers `null` for unknown or deleted items.
        raise DecodeError(f"Story {story_id} not found upstream")
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object for story {story_id}")

    raw_id = data.get("id")
    if not isinstance(raw_id, int) or isinstance(raw_id, bool):
        raise DecodeError(f"Story {story_id} has no integer id")
    if story_id is not None and raw_id != story_id:
        raise DecodeError(f"Requested story {story_id} but upstream returned id {raw_id}")

    try:
        story = Story(
            id=raw_id,
            title=str(data.get("title") or ""),
            url=str(data["url"]) if data.get("url") else None,
            by=str(data.get("by") or ""),
            time=int(data.get("time") or 0),
            score=int(data.get("score") or 0),
            descendants=int(data.get("descendants") or 0),
        )
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Story {story_id} has malformed fields: {e}") from e
    if story.descendants < 0:
        raise DecodeError(f"Story {story_id} has a negative comment count")
    return story
