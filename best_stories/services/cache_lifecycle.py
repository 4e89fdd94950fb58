"""Cache lifecycle: initial build, periodic refresh and the background loop.

State machine (see stores.story_cache.CacheState):
- UNINITIALIZED -> BUILDING -> READY      first successful build
- BUILDING -> UNINITIALIZED               ID-list failure or cancellation
- READY -> REFRESHING -> READY            every refresh, whatever its outcome

Build and refresh share one critical section, so at most one cycle talks to
the upstream at a time. A build trigger waits for the running cycle and then
does nothing if the cache is already ready; a refresh trigger that finds a
cycle in flight is skipped.

The loop waits `refresh_interval_seconds` between the end of one cycle and the
start of the next, so an overrunning cycle never stacks up. Setting the stop
event interrupts the wait and abandons the fetch phase of a running cycle.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from best_stories.models import Story
from best_stories.services.errors import BuildFailed, DecodeError, UpstreamUnavailable
from best_stories.services.fetcher import fetch_all, resolve_concurrency
from best_stories.settings import DEFAULT_REFRESH_INTERVAL_SECONDS, Settings
from best_stories.stores.story_cache import CacheState, StoryCache

logger = logging.getLogger("uvicorn.error")

DEFAULT_BUILD_RETRY_SECONDS = 30


class StorySource(Protocol):
    async def fetch_best_story_ids(self) -> list[int]: ...

    async def fetch_story(self, story_id: int) -> Story: ...


@dataclass
class CycleStats:
    """Statistics from one build or refresh cycle."""

    kind: str  # "build" or "refresh"
    ids: int = 0
    fetched: int = 0
    failed: int = 0
    cancelled: bool = False
    skipped: bool = False
    error: str | None = None
    failed_ids: list[int] = field(default_factory=list)


class CacheLifecycle:
    """Owns the readiness state machine and the refresh loop for one StoryCache."""

    def __init__(
        self,
        store: StoryCache,
        client: StorySource,
        *,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        build_retry_seconds: float = DEFAULT_BUILD_RETRY_SECONDS,
        concurrency_limit: int | None = None,
        item_fetch_retries: int = 0,
        item_fetch_retry_backoff_seconds: float = 0.5,
        stop_event: asyncio.Event | None = None,
    ):
        """Initialize lifecycle.

        Args:
            store: Cache to populate.
            client: Upstream client with `fetch_best_story_ids()` and `fetch_story(id)`.
            refresh_interval_seconds: Wait between cycles once the cache is ready.
            build_retry_seconds: Wait before retrying a failed build (capped by the interval;
                non-positive values fall back to 30).
            concurrency_limit: Max in-flight story fetches (default 100).
            item_fetch_retries: Extra attempts per story on transport errors.
            item_fetch_retry_backoff_seconds: Base backoff for those attempts.
            stop_event: Shutdown signal; a fresh one is created when omitted.
        """
        self._store = store
        self._client = client
        self._refresh_interval = (
            refresh_interval_seconds if refresh_interval_seconds > 0 else DEFAULT_REFRESH_INTERVAL_SECONDS
        )
        if build_retry_seconds <= 0:
            build_retry_seconds = DEFAULT_BUILD_RETRY_SECONDS
        self._build_retry = min(build_retry_seconds, self._refresh_interval)
        self._concurrency = resolve_concurrency(concurrency_limit)
        self._retries = max(item_fetch_retries, 0)
        self._retry_backoff = item_fetch_retry_backoff_seconds
        self._stop_event = stop_event or asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self.last_stats: CycleStats | None = None

    @classmethod
    def from_settings(cls, store: StoryCache, client: StorySource, settings: Settings) -> "CacheLifecycle":
        return cls(
            store,
            client,
            refresh_interval_seconds=settings.cache_refresh_interval_seconds,
            build_retry_seconds=settings.cache_build_retry_seconds,
            concurrency_limit=settings.fetch_concurrency,
            item_fetch_retries=settings.item_fetch_retries,
            item_fetch_retry_backoff_seconds=settings.item_fetch_retry_backoff_seconds,
        )

    @property
    def store(self) -> StoryCache:
        return self._store

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ============================================================
    # Cycles
    # ============================================================

    async def run_cycle(self) -> CycleStats:
        """Build when the cache is not ready yet, refresh otherwise."""
        if not self._store.is_ready():
            return await self.build()
        return await self.refresh()

    async def build(self) -> CycleStats:
        """Populate the cache from empty and mark it ready.

        Raises:
            BuildFailed: the ranked ID list could not be fetched. Readiness is
                reset so the next trigger starts over; stories upserted by a
                previous attempt stay in the cache.
        """
        async with self._cycle_lock:
            if self._store.is_ready():
                return CycleStats(kind="build", skipped=True)

            logger.info("Building cache")
            self._store.transition(CacheState.BUILDING)
            try:
                stats = await self._populate("build")
            except (UpstreamUnavailable, DecodeError) as e:
                self._store.transition(CacheState.UNINITIALIZED)
                self.last_stats = CycleStats(kind="build", error=str(e))
                raise BuildFailed(f"Failed to build cache: {e}") from e
            except (Exception, asyncio.CancelledError):
                self._store.transition(CacheState.UNINITIALIZED)
                raise

            if stats.cancelled:
                self._store.transition(CacheState.UNINITIALIZED)
                logger.info("Cache build abandoned on shutdown")
            else:
                self._store.transition(CacheState.READY)
                logger.info(
                    f"Cache built successfully: {stats.fetched}/{stats.ids} stories, "
                    f"{stats.failed} failed"
                )
            self.last_stats = stats
            return stats

    async def refresh(self) -> CycleStats:
        """Re-fetch the ranked list and every listed story.

        A failed ID-list fetch is logged and reported in the stats; the cache
        keeps serving its previous contents and stays ready.
        """
        if self._cycle_lock.locked():
            logger.warning("Cache cycle already in flight, skipping refresh trigger")
            return CycleStats(kind="refresh", skipped=True)

        async with self._cycle_lock:
            if not self._store.is_ready():
                return CycleStats(kind="refresh", skipped=True)

            logger.info("Refreshing cache")
            self._store.transition(CacheState.REFRESHING)
            try:
                stats = await self._populate("refresh")
            except (UpstreamUnavailable, DecodeError) as e:
                logger.error(f"Failed to refresh cache, serving stale stories: {e}")
                stats = CycleStats(kind="refresh", error=str(e))
            finally:
                self._store.transition(CacheState.READY)

            if not stats.error and not stats.cancelled:
                logger.info(
                    f"Cache refreshed successfully: {stats.fetched}/{stats.ids} stories, "
                    f"{stats.failed} failed"
                )
            self.last_stats = stats
            return stats

    async def _populate(self, kind: str) -> CycleStats:
        stats = CycleStats(kind=kind)

        ids = await self._client.fetch_best_story_ids()
        stats.ids = len(ids)

        if self._stop_event.is_set():
            stats.cancelled = True
            return stats

        def _on_story(story: Story) -> None:
            self._store.upsert(story)

        outcome = await fetch_all(
            self._client,
            ids,
            self._concurrency,
            stop_event=self._stop_event,
            retries=self._retries,
            retry_backoff_seconds=self._retry_backoff,
            on_story=_on_story,
        )
        stats.fetched = len(outcome.stories)
        stats.failed = len(outcome.failures)
        stats.failed_ids = outcome.failed_ids
        stats.cancelled = outcome.cancelled
        return stats

    # ============================================================
    # Background loop
    # ============================================================

    async def run_forever(self) -> None:
        """Run build/refresh cycles until the stop event is set."""
        logger.info(
            f"Cache loop started (interval={self._refresh_interval}s, "
            f"concurrency={self._concurrency})"
        )
        try:
            while not self._stop_event.is_set():
                try:
                    await self.run_cycle()
                except BuildFailed as e:
                    logger.error(str(e))
                except Exception:
                    logger.exception("Unexpected error in cache cycle")

                wait_s = self._refresh_interval if self._store.is_ready() else self._build_retry
                if await self._wait(wait_s):
                    break
        except asyncio.CancelledError:
            logger.info("Cache loop cancelled")
            raise
        logger.info("Cache loop stopped")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; return True if the stop event fired."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def start(self) -> asyncio.Task:
        """Start the background loop on the running event loop (idempotent)."""
        if self.running:
            return self._task  # type: ignore[return-value]
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever(), name="best-stories-cache-loop")
        return self._task

    async def stop(self, timeout: float | None = 10.0) -> None:
        """Signal shutdown and wait for the loop; cancel it if it overruns `timeout`."""
        self._stop_event.set()
        task, self._task = self._task, None
        if task is None:
            return
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
