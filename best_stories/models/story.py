"""Story model.

A single ranked Hacker News entry as held by the story cache.
Instances are frozen: the cache replaces whole values on refresh, so a
reader always sees one consistent version of a story.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Story:
    """Best story snapshot as returned by the upstream item resource."""

    id: int
    title: str
    url: str | None
    by: str
    time: int  # unix seconds
    score: int
    descendants: int  # comment count

    def __repr__(self) -> str:
        return f"<Story {self.id} score={self.score}>"
