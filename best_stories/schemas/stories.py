"""Schemas for the best stories endpoint (/api/beststories)."""

from pydantic import BaseModel, Field

from best_stories.models import Story


class StorySummary(BaseModel):
    """A single story as shown to API clients."""

    title: str
    uri: str | None
    posted_by: str = Field(alias="postedBy")
    time: int
    score: int
    comment_count: int = Field(alias="commentCount", ge=0)

    model_config = {"populate_by_name": True}

    @classmethod
    def from_story(cls, story: Story) -> "StorySummary":
        return cls(
            title=story.title,
            uri=story.url,
            posted_by=story.by,
            time=story.time,
            score=story.score,
            comment_count=story.descendants,
        )


class CacheStatus(BaseModel):
    """Readiness view of the story cache."""

    state: str
    ready: bool
    stories: int = Field(ge=0)
