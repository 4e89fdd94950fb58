"""Domain models.

Models are plain, immutable values:
- stories: ranked entries fetched from the upstream API and cached in memory
"""

from best_stories.models.story import Story

__all__ = ["Story"]
