"""Fetch orchestrator: ranked IDs -> story details with bounded fan-out.

Flow:
1. Dispatch one fetch per ID, at most `concurrency_limit` in flight
2. Record each outcome as a story or an (id, error) failure
3. Return once every fetch finished, or early if the stop event fires

One failing ID never cancels its siblings. Output order is not significant;
the cache keys stories by ID.
"""

import asyncio
import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from best_stories.models import Story
from best_stories.services.errors import UpstreamUnavailable
from best_stories.settings import DEFAULT_FETCH_CONCURRENCY

logger = logging.getLogger("uvicorn.error")


class StoryFetcher(Protocol):
    async def fetch_story(self, story_id: int) -> Story: ...


@dataclass
class FetchOutcome:
    """Aggregated result of a fan-out over story IDs."""

    stories: list[Story] = field(default_factory=list)
    failures: list[tuple[int, Exception]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_ids(self) -> list[int]:
        return [story_id for story_id, _ in self.failures]


def resolve_concurrency(value: object) -> int:
    """Return a usable concurrency limit (default 100 when unset or invalid)."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return DEFAULT_FETCH_CONCURRENCY
    return value


async def fetch_all(
    client: StoryFetcher,
    ids: Iterable[int],
    concurrency_limit: int | None = DEFAULT_FETCH_CONCURRENCY,
    *,
    stop_event: asyncio.Event | None = None,
    retries: int = 0,
    retry_backoff_seconds: float = 0.5,
    on_story: Callable[[Story], None] | None = None,
) -> FetchOutcome:
    """Fetch every story in `ids` with at most `concurrency_limit` calls in flight.

    Args:
        client: Anything with an async `fetch_story(id)`.
        ids: Story IDs to fetch (duplicates are fetched once).
        concurrency_limit: Max concurrent fetches; invalid values fall back to 100.
        stop_event: When set, pending fetches are cancelled and the stories
            completed so far are returned with `cancelled=True`.
        retries: Extra attempts per ID for UpstreamUnavailable (0 = no retry).
        retry_backoff_seconds: Base delay, doubled per attempt, plus jitter.
        on_story: Called with each story as soon as it arrives.

    Returns:
        FetchOutcome with successes, per-ID failures and the cancellation flag.
    """
    limit = resolve_concurrency(concurrency_limit)
    unique_ids = list(dict.fromkeys(ids))
    outcome = FetchOutcome()
    if not unique_ids:
        return outcome
    if stop_event is not None and stop_event.is_set():
        outcome.cancelled = True
        return outcome

    sem = asyncio.Semaphore(limit)

    async def _fetch_one(story_id: int) -> None:
        async with sem:
            try:
                story = await _fetch_with_retry(client, story_id, retries, retry_backoff_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Story fetch failed id={story_id}: {e}")
                outcome.failures.append((story_id, e))
                return
            outcome.stories.append(story)
            if on_story is not None:
                on_story(story)

    logger.info(f"Waiting for {len(unique_ids)} story details (concurrency={limit})")
    tasks = [asyncio.create_task(_fetch_one(story_id)) for story_id in unique_ids]
    stop_waiter: asyncio.Task | None = None
    if stop_event is not None:
        stop_waiter = asyncio.create_task(stop_event.wait())

    try:
        pending: set[asyncio.Task] = set(tasks)
        while pending:
            wait_on = (pending | {stop_waiter}) if stop_waiter else pending
            done, _ = await asyncio.wait(wait_on, return_when=asyncio.FIRST_COMPLETED)
            pending -= done
            if stop_waiter is not None and stop_waiter in done and pending:
                outcome.cancelled = True
                break
    finally:
        # Also reached when the caller's task is cancelled.
        for task in tasks:
            if not task.done():
                task.cancel()
        if stop_waiter is not None and not stop_waiter.done():
            stop_waiter.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    if outcome.cancelled:
        logger.info(
            f"Story fetch cancelled: {len(outcome.stories)} fetched, "
            f"{len(unique_ids) - len(outcome.stories) - len(outcome.failures)} abandoned"
        )
    elif outcome.failures:
        logger.warning(
            f"Story fetch finished with {len(outcome.failures)} failures "
            f"out of {len(unique_ids)}"
        )
    return outcome


async def _fetch_with_retry(
    client: StoryFetcher,
    story_id: int,
    retries: int,
    backoff_seconds: float,
) -> Story:
    attempt = 0
    while True:
        try:
            return await client.fetch_story(story_id)
        except UpstreamUnavailable as e:
            if attempt >= retries:
                raise
            wait_s = backoff_seconds * (2**attempt) + random.uniform(0, backoff_seconds)
            attempt += 1
            logger.info(f"Retrying story id={story_id} attempt={attempt}/{retries} in {wait_s:.2f}s: {e}")
            await asyncio.sleep(wait_s)
