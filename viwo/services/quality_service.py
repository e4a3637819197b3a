"""
viwo.services.quality_service — Content Quality Scorer
=======================================================

Computes :func:`viwo.engine.quality.score_content` from a post's live
counters and caches the result in ``content_quality_scores`` (one row per
post, upserted).  Also answers the per-user question the Points
Calculator asks: "what is this author's recent content worth?"
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from viwo.constants import utcnow
from viwo.database.engine import unit_of_work
from viwo.database.models import Comment, ContentQualityScore, Post
from viwo.engine.quality import PostMetrics, QualityBreakdown, score_content
from viwo.errors import ContentNotFoundError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_MULTIPLIER = 1.0


def _row_to_dict(row: ContentQualityScore) -> dict[str, Any]:
    return {
        "postId": row.post_id,
        "engagementRate": row.engagement_rate,
        "retentionScore": row.retention_score,
        "viralityScore": row.virality_score,
        "commentQuality": row.comment_quality,
        "overallScore": row.overall_score,
        "multiplier": row.multiplier,
        "calculatedAt": row.calculated_at.isoformat() if row.calculated_at else None,
    }


class QualityScorer:
    def __init__(self, engine: Engine, config: RewardsConfig) -> None:
        self.engine = engine
        self.lookback_days = config.quality_lookback_days
        self.sample_size = config.quality_sample_size

    def _metrics(self, session: Session, post: Post) -> PostMetrics:
        avg_length = session.scalar(
            select(func.avg(func.length(Comment.content))).where(Comment.post_id == post.id)
        )
        return PostMetrics(
            likes=post.likes_count or 0,
            comments=post.comments_count or 0,
            shares=post.shares_count or 0,
            reposts=post.reposts_count or 0,
            views=post.views_count or 0,
            media_type=post.media_type,
            avg_comment_length=float(avg_length or 0.0),
        )

    def calculate(self, post_id: int) -> QualityBreakdown:
        """Score *post_id* from its current counters and upsert the cache row."""
        with unit_of_work(self.engine) as session:
            post = session.get(Post, post_id)
            if post is None:
                raise ContentNotFoundError(post_id)

            breakdown = score_content(self._metrics(session, post))

            row = session.scalar(
                select(ContentQualityScore).where(ContentQualityScore.post_id == post_id)
            )
            if row is None:
                row = ContentQualityScore(post_id=post_id)
                session.add(row)
            row.engagement_rate = breakdown.engagement_rate
            row.retention_score = breakdown.retention_score
            row.virality_score = breakdown.virality_score
            row.comment_quality = breakdown.comment_quality
            row.overall_score = breakdown.overall_score
            row.multiplier = breakdown.multiplier
            row.calculated_at = utcnow()

        return breakdown

    def get_score(self, post_id: int) -> dict[str, Any]:
        """Cached score, computed on a miss."""
        with Session(self.engine) as session:
            row = session.scalar(
                select(ContentQualityScore).where(ContentQualityScore.post_id == post_id)
            )
            if row is not None:
                return _row_to_dict(row)

        self.calculate(post_id)
        with Session(self.engine) as session:
            row = session.scalar(
                select(ContentQualityScore).where(ContentQualityScore.post_id == post_id)
            )
            return _row_to_dict(row)

    def refresh_recent(self, days: int | None = None, now: datetime | None = None) -> dict[str, int]:
        """Recompute every post created in the last *days* days.

        A failing post is logged and skipped.
        """
        days = self.lookback_days if days is None else days
        since = (now or utcnow()) - timedelta(days=days)
        with Session(self.engine) as session:
            post_ids = session.scalars(
                select(Post.id).where(Post.created_at >= since).order_by(Post.id)
            ).all()

        updated = 0
        for post_id in post_ids:
            try:
                self.calculate(post_id)
                updated += 1
            except Exception:
                logger.exception(
                    "Quality refresh failed for post %d", post_id,
                    extra={"stage": "quality_refresh"},
                )

        logger.info("Quality scores refreshed: %d/%d posts", updated, len(post_ids))
        return {"updated": updated, "total": len(post_ids)}

    def user_multiplier(self, user_id: int, reference: datetime) -> float:
        """Mean multiplier of the user's recent scored posts (default 1.0).

        Considers posts in ``[reference - lookback, reference)`` that have a
        cache row, newest first, at most ``quality_sample_size`` of them.
        """
        since = reference - timedelta(days=self.lookback_days)
        with Session(self.engine) as session:
            multipliers = session.scalars(
                select(ContentQualityScore.multiplier)
                .join(Post, Post.id == ContentQualityScore.post_id)
                .where(
                    Post.user_id == user_id,
                    Post.created_at >= since,
                    Post.created_at < reference,
                )
                .order_by(Post.created_at.desc())
                .limit(self.sample_size)
            ).all()

        if not multipliers:
            return DEFAULT_QUALITY_MULTIPLIER
        return sum(multipliers) / len(multipliers)
