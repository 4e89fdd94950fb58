"""In-memory story cache.

Handles:
- Story upserts keyed by story ID (last writer wins)
- Point-in-time snapshots for readers
- The readiness state driven by the cache lifecycle

All access happens on the event loop thread. Each upsert and snapshot is a
single dict operation with no await in between, so readers never observe a
half-written story and never need a lock. Items are never evicted; a story
that drops out of the ranked list keeps its last value until restart.
"""

import enum
import logging
from best_stories.models import Story

logger = logging.getLogger("uvicorn.error")


class CacheState(str, enum.Enum):
    """Readiness state of the story cache."""

    UNINITIALIZED = "uninitialized"
    BUILDING = "building"
    READY = "ready"
    REFRESHING = "refreshing"


# Only the lifecycle moves the state, along these edges.
_TRANSITIONS: dict[CacheState, set[CacheState]] = {
    CacheState.UNINITIALIZED: {CacheState.BUILDING},
    CacheState.BUILDING: {CacheState.READY, CacheState.UNINITIALIZED},
    CacheState.READY: {CacheState.REFRESHING},
    CacheState.REFRESHING: {CacheState.READY},
}


class StoryCache:
    """Process-wide story store plus readiness state."""

    def __init__(self) -> None:
        self._stories: dict[int, Story] = {}
        self._state = CacheState.UNINITIALIZED

    @property
    def state(self) -> CacheState:
        return self._state

    def transition(self, new_state: CacheState) -> None:
        """Move to `new_state`, rejecting edges the state machine does not allow."""
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal cache transition {self._state.value} -> {new_state.value}")
        logger.debug(f"Cache state {self._state.value} -> {new_state.value}")
        self._state = new_state

    def is_ready(self) -> bool:
        """True once a build has completed; a refresh in flight keeps serving."""
        return self._state in (CacheState.READY, CacheState.REFRESHING)

    def upsert(self, story: Story) -> None:
        """Insert or replace the entry for `story.id`."""
        self._stories[story.id] = story

    def snapshot(self) -> list[Story]:
        """Return the current stories in insertion order of their IDs."""
        return list(self._stories.values())

    def __len__(self) -> int:
        return len(self._stories)

    def stats(self) -> dict[str, object]:
        return {
            "state": self._state.value,
            "ready": self.is_ready(),
            "stories": len(self._stories),
        }
