"""
viwo.engine.events — ActivityEvent and ActivityCounts
======================================================

The two shapes the Activity Aggregator hands to the scoring pipeline.
An :class:`ActivityEvent` is one counted action; :class:`ActivityCounts`
is the per-window tally the bot heuristics look at.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from viwo.database.models import ActivityType

__all__ = ["ActivityEvent", "ActivityCounts", "POST_TYPES", "post_type_for"]

POST_TYPES: frozenset[ActivityType] = frozenset(
    {ActivityType.TEXT_POST, ActivityType.IMAGE_POST, ActivityType.VIDEO_POST}
)


def post_type_for(media_type: str | None) -> ActivityType:
    """Map ``posts.media_type`` to the activity type it earns."""
    if media_type == "video":
        return ActivityType.VIDEO_POST
    if media_type == "image":
        return ActivityType.IMAGE_POST
    return ActivityType.TEXT_POST


# ---------------------------------------------------------------------------
# ActivityEvent — one counted action
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivityEvent:
    user_id: int
    type: ActivityType
    occurred_at: datetime


# ---------------------------------------------------------------------------
# ActivityCounts — tallies for a window
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivityCounts:
    """Action counts for one user over a half-open window.

    ``posts`` is the total over all media types; the per-type fields
    break it down.
    """

    text_posts: int = 0
    image_posts: int = 0
    video_posts: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    reposts: int = 0
    follows: int = 0

    @property
    def posts(self) -> int:
        return self.text_posts + self.image_posts + self.video_posts

    @property
    def velocity_actions(self) -> int:
        """Actions counted by the velocity rule."""
        return self.posts + self.likes + self.comments + self.shares

    @property
    def diversity_counts(self) -> tuple[int, int, int, int, int]:
        """Per-type totals considered by the diversity rule."""
        return (self.posts, self.likes, self.comments, self.shares, self.follows)

    def as_dict(self) -> dict[str, int]:
        data = asdict(self)
        data["posts"] = self.posts
        return data

    @classmethod
    def from_events(cls, events: list[ActivityEvent]) -> ActivityCounts:
        tally = {t: 0 for t in ActivityType}
        for event in events:
            tally[event.type] += 1
        return cls(
            text_posts=tally[ActivityType.TEXT_POST],
            image_posts=tally[ActivityType.IMAGE_POST],
            video_posts=tally[ActivityType.VIDEO_POST],
            likes=tally[ActivityType.LIKE],
            comments=tally[ActivityType.COMMENT],
            shares=tally[ActivityType.SHARE],
            reposts=tally[ActivityType.REPOST],
            follows=tally[ActivityType.FOLLOW],
        )
