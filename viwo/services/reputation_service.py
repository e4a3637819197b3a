"""
viwo.services.reputation_service — Reputation Scorer
=====================================================

Gathers account signals (age, verification tier, follower and post
counts, quality of recent posts), scores them with
:func:`viwo.engine.reputation.score_reputation` and caches the result in
``user_reputation_scores`` (one row per user, upserted).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, union
from sqlalchemy.orm import Session

from viwo.constants import as_utc, utcnow
from viwo.database.engine import unit_of_work
from viwo.database.models import ContentQualityScore, Follow, Post, User, UserReputationScore
from viwo.engine.reputation import AccountSignals, ReputationBreakdown, score_reputation
from viwo.errors import UserNotFoundError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig

logger = logging.getLogger(__name__)


def _row_to_dict(row: UserReputationScore) -> dict[str, Any]:
    return {
        "userId": row.user_id,
        "accountAgeScore": row.account_age_score,
        "historicalQualityScore": row.historical_quality_score,
        "verificationScore": row.verification_score,
        "communityStandingScore": row.community_standing_score,
        "overallReputation": row.overall_reputation,
        "lastCalculated": row.last_calculated.isoformat() if row.last_calculated else None,
    }


class ReputationScorer:
    def __init__(self, engine: Engine, config: RewardsConfig) -> None:
        self.engine = engine
        self.tier_multipliers = dict(config.tier_multipliers)
        self.sample_size = config.reputation_sample_size

    def _signals(self, session: Session, user: User, now: datetime) -> AccountSignals:
        recent_posts = (
            select(Post.id)
            .where(Post.user_id == user.id)
            .order_by(Post.created_at.desc())
            .limit(self.sample_size)
            .subquery()
        )
        scores = session.scalars(
            select(ContentQualityScore.overall_score).join(
                recent_posts, recent_posts.c.id == ContentQualityScore.post_id
            )
        ).all()
        followers = session.scalar(
            select(func.count()).select_from(Follow).where(Follow.following_id == user.id)
        ) or 0
        posts = session.scalar(
            select(func.count()).select_from(Post).where(Post.user_id == user.id)
        ) or 0
        age = now - as_utc(user.created_at)
        return AccountSignals(
            account_age_days=age.total_seconds() / 86_400,
            verification_tier=user.verification_tier,
            follower_count=followers,
            post_count=posts,
            recent_quality_scores=tuple(scores),
        )

    def calculate(self, user_id: int, now: datetime | None = None) -> ReputationBreakdown:
        """Score *user_id* and upsert the cache row."""
        now = now or utcnow()
        with unit_of_work(self.engine) as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            breakdown = score_reputation(self._signals(session, user, now), self.tier_multipliers)

            row = session.scalar(
                select(UserReputationScore).where(UserReputationScore.user_id == user_id)
            )
            if row is None:
                row = UserReputationScore(user_id=user_id)
                session.add(row)
            row.account_age_score = breakdown.account_age_score
            row.historical_quality_score = breakdown.historical_quality_score
            row.verification_score = breakdown.verification_score
            row.community_standing_score = breakdown.community_standing_score
            row.overall_reputation = breakdown.overall_reputation
            row.last_calculated = now

        return breakdown

    def get_reputation(self, user_id: int) -> dict[str, Any]:
        """Cached reputation, computed on a miss."""
        stmt = select(UserReputationScore).where(UserReputationScore.user_id == user_id)
        with Session(self.engine) as session:
            row = session.scalar(stmt)
            if row is not None:
                return _row_to_dict(row)

        self.calculate(user_id)
        with Session(self.engine) as session:
            return _row_to_dict(session.scalar(stmt))

    def multiplier(self, user_id: int) -> float:
        with Session(self.engine) as session:
            cached = session.scalar(
                select(UserReputationScore.overall_reputation).where(
                    UserReputationScore.user_id == user_id
                )
            )
        if cached is not None:
            return cached
        return self.calculate(user_id).overall_reputation

    def refresh_all(self, now: datetime | None = None) -> dict[str, int]:
        """Recompute every user with posts or followers, isolating failures."""
        stmt = union(
            select(Post.user_id),
            select(Follow.following_id),
        )
        with Session(self.engine) as session:
            user_ids = sorted(session.scalars(stmt).all())

        updated = 0
        for user_id in user_ids:
            try:
                self.calculate(user_id, now=now)
                updated += 1
            except Exception:
                logger.exception(
                    "Reputation refresh failed for user %d", user_id,
                    extra={"user_id": user_id, "stage": "reputation_refresh"},
                )

        logger.info("Reputations refreshed: %d/%d users", updated, len(user_ids))
        return {"updated": updated, "total": len(user_ids)}
