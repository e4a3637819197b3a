"""
viwo.services.activity_service — Activity Aggregator
=====================================================

Read-only view of the collaborator tables (``posts``, ``comments``,
``post_interactions``, ``follows``) as activity for a half-open window
``[start, end)``.  No side effects; storage errors propagate unchanged
so the caller can decide to skip the user for the run.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, union
from sqlalchemy.orm import Session

from viwo.database.models import (
    ActivityType,
    Comment,
    Follow,
    InteractionKind,
    Post,
    PostInteraction,
)
from viwo.engine.events import ActivityCounts, ActivityEvent, post_type_for

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

_INTERACTION_TYPES: dict[str, ActivityType] = {
    InteractionKind.LIKE.value: ActivityType.LIKE,
    InteractionKind.SHARE.value: ActivityType.SHARE,
    InteractionKind.REPOST.value: ActivityType.REPOST,
}


class ActivityAggregator:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def events(self, user_id: int, start: datetime, end: datetime) -> list[ActivityEvent]:
        """Every counted action of *user_id* in ``[start, end)``, oldest first."""
        events: list[ActivityEvent] = []
        with Session(self.engine) as session:
            for media_type, created_at in session.execute(
                select(Post.media_type, Post.created_at).where(
                    Post.user_id == user_id,
                    Post.created_at >= start,
                    Post.created_at < end,
                )
            ):
                events.append(ActivityEvent(user_id, post_type_for(media_type), created_at))

            for kind, created_at in session.execute(
                select(PostInteraction.interaction_type, PostInteraction.created_at).where(
                    PostInteraction.user_id == user_id,
                    PostInteraction.created_at >= start,
                    PostInteraction.created_at < end,
                )
            ):
                activity_type = _INTERACTION_TYPES.get(kind)
                if activity_type is not None:
                    events.append(ActivityEvent(user_id, activity_type, created_at))

            for (created_at,) in session.execute(
                select(Comment.created_at).where(
                    Comment.user_id == user_id,
                    Comment.created_at >= start,
                    Comment.created_at < end,
                )
            ):
                events.append(ActivityEvent(user_id, ActivityType.COMMENT, created_at))

            for (created_at,) in session.execute(
                select(Follow.created_at).where(
                    Follow.follower_id == user_id,
                    Follow.created_at >= start,
                    Follow.created_at < end,
                )
            ):
                events.append(ActivityEvent(user_id, ActivityType.FOLLOW, created_at))

        events.sort(key=lambda e: e.occurred_at)
        return events

    def counts(self, user_id: int, start: datetime, end: datetime) -> ActivityCounts:
        """Per-type tallies for ``[start, end)``, computed in the database."""
        with Session(self.engine) as session:
            posts_by_media = dict(
                session.execute(
                    select(Post.media_type, func.count())
                    .where(
                        Post.user_id == user_id,
                        Post.created_at >= start,
                        Post.created_at < end,
                    )
                    .group_by(Post.media_type)
                ).all()
            )
            interactions = dict(
                session.execute(
                    select(PostInteraction.interaction_type, func.count())
                    .where(
                        PostInteraction.user_id == user_id,
                        PostInteraction.created_at >= start,
                        PostInteraction.created_at < end,
                    )
                    .group_by(PostInteraction.interaction_type)
                ).all()
            )
            comments = session.scalar(
                select(func.count()).select_from(Comment).where(
                    Comment.user_id == user_id,
                    Comment.created_at >= start,
                    Comment.created_at < end,
                )
            ) or 0
            follows = session.scalar(
                select(func.count()).select_from(Follow).where(
                    Follow.follower_id == user_id,
                    Follow.created_at >= start,
                    Follow.created_at < end,
                )
            ) or 0

        image_posts = posts_by_media.pop("image", 0)
        video_posts = posts_by_media.pop("video", 0)
        return ActivityCounts(
            text_posts=sum(posts_by_media.values()),
            image_posts=image_posts,
            video_posts=video_posts,
            likes=interactions.get(InteractionKind.LIKE.value, 0),
            comments=comments,
            shares=interactions.get(InteractionKind.SHARE.value, 0),
            reposts=interactions.get(InteractionKind.REPOST.value, 0),
            follows=follows,
        )

    def active_user_ids(self, start: datetime, end: datetime) -> list[int]:
        """Users with any post, interaction or comment in ``[start, end)``."""
        stmt = union(
            select(Post.user_id).where(Post.created_at >= start, Post.created_at < end),
            select(PostInteraction.user_id).where(
                PostInteraction.created_at >= start, PostInteraction.created_at < end
            ),
            select(Comment.user_id).where(
                Comment.created_at >= start, Comment.created_at < end
            ),
        )
        with Session(self.engine) as session:
            user_ids = sorted(session.scalars(stmt).all())
        logger.debug("%d active users in [%s, %s)", len(user_ids), start, end)
        return user_ids
