"""
tests/test_quality.py — Content Quality Scorer Tests
=====================================================
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import DAY_NOON, REWARD_DAY, add_comments, add_posts, add_user
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from viwo.constants import day_bounds
from viwo.database.models import ContentQualityScore
from viwo.engine.quality import PostMetrics, multiplier_for, score_content
from viwo.errors import ContentNotFoundError


class TestScoreContent:
    def test_components(self):
        result = score_content(PostMetrics(
            likes=20, comments=5, shares=5, reposts=2, views=1000, avg_comment_length=50,
        ))
        assert result.engagement_rate == pytest.approx(0.03)
        assert result.retention_score == 1.0
        assert result.virality_score == pytest.approx(0.008)
        assert result.comment_quality == pytest.approx(0.5)
        assert result.overall_score == pytest.approx(0.012 + 0.2 + 0.0024 + 0.05)
        assert result.multiplier == 10.0

    def test_video_retention_placeholder(self):
        assert score_content(PostMetrics(media_type="video")).retention_score == 0.7

    def test_zero_views_does_not_divide_by_zero(self):
        result = score_content(PostMetrics(likes=3, views=0))
        assert result.engagement_rate == 3.0

    def test_comment_quality_is_capped(self):
        assert score_content(PostMetrics(avg_comment_length=500)).comment_quality == 1.0

    def test_no_comments_scores_zero_comment_quality(self):
        assert score_content(PostMetrics()).comment_quality == 0.0


class TestMultiplierBuckets:
    @pytest.mark.parametrize(
        ("overall", "expected"),
        [
            (0.0, 0.1),
            (0.004, 0.1),
            (0.005, 0.5),
            (0.01, 1.0),
            (0.019, 1.0),
            (0.02, 2.0),
            (0.05, 5.0),
            (0.0999, 5.0),
            (0.10, 10.0),
            (0.9, 10.0),
        ],
    )
    def test_bucket(self, overall, expected):
        assert multiplier_for(overall) == expected


# ===========================================================================
# QualityScorer service
# ===========================================================================
class TestQualityScorer:
    def test_calculate_upserts_one_row(self, services, db_engine):
        add_user(db_engine, 1)
        (post_id,) = add_posts(
            db_engine, 1, 1, likes_count=20, comments_count=5, shares_count=5,
            reposts_count=2, views_count=1000,
        )
        add_comments(db_engine, 1, post_id, 2, content="x" * 50)

        first = services.quality.calculate(post_id)
        second = services.quality.calculate(post_id)
        assert first == second
        assert first.comment_quality == pytest.approx(0.5)

        with Session(db_engine) as session:
            count = session.scalar(select(func.count()).select_from(ContentQualityScore))
        assert count == 1

    def test_get_score_computes_on_miss(self, services, db_engine):
        add_user(db_engine, 1)
        (post_id,) = add_posts(db_engine, 1, 1, views_count=10)
        score = services.quality.get_score(post_id)
        assert score["postId"] == post_id
        assert score["multiplier"] == 10.0
        # second call served from the cache row
        assert services.quality.get_score(post_id)["calculatedAt"] == score["calculatedAt"]

    def test_unknown_post(self, services):
        with pytest.raises(ContentNotFoundError):
            services.quality.calculate(404)

    def test_refresh_recent_only_touches_window(self, services, db_engine):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 3, at=DAY_NOON)
        add_posts(db_engine, 1, 2, at=DAY_NOON - timedelta(days=60))

        result = services.quality.refresh_recent(days=30, now=DAY_NOON + timedelta(days=1))
        assert result == {"updated": 3, "total": 3}


class TestUserMultiplier:
    def test_default_without_scored_posts(self, services, db_engine):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 2)
        _, end = day_bounds(REWARD_DAY)
        assert services.quality.user_multiplier(1, end) == 1.0

    def test_mean_of_scored_posts(self, services, db_engine):
        add_user(db_engine, 1)
        for post_id in add_posts(db_engine, 1, 2):
            services.quality.calculate(post_id)
        _, end = day_bounds(REWARD_DAY)
        assert services.quality.user_multiplier(1, end) == 10.0

    def test_posts_after_reference_are_ignored(self, services, db_engine):
        add_user(db_engine, 1)
        for post_id in add_posts(db_engine, 1, 2, at=DAY_NOON + timedelta(days=2)):
            services.quality.calculate(post_id)
        _, end = day_bounds(REWARD_DAY)
        assert services.quality.user_multiplier(1, end) == 1.0
