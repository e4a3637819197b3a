"""
tests/test_points.py — Points Calculator Tests
===============================================

Decay table, raw point sums, the combination stage and its monotonicity,
and the PointsCalculator service over a seeded database.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import DAY_NOON, REWARD_DAY, add_interactions, add_posts, add_user
from sqlalchemy.orm import Session

from viwo.config import DEFAULT_ACTIVITY_POINTS, RewardsConfig
from viwo.constants import day_bounds
from viwo.database.models import ActivityType, UserReputationScore
from viwo.engine.events import ActivityEvent
from viwo.engine.points import combine_points, raw_points, round_half_up, time_decay
from viwo.wiring import build_services


class TestTimeDecay:
    @pytest.mark.parametrize(
        ("age", "factor"),
        [
            (0, 1.0),
            (1, 1.0),
            (1.01, 0.95),
            (3, 0.95),
            (7, 0.70),
            (14, 0.45),
            (30, 0.20),
            (60, 0.08),
            (90, 0.05),
            (91, 0.03),
            (400, 0.03),
        ],
    )
    def test_steps(self, age, factor):
        assert time_decay(age) == factor


class TestRawPoints:
    def test_weights_and_decay(self):
        _, end = day_bounds(REWARD_DAY)
        events = [
            ActivityEvent(1, ActivityType.TEXT_POST, end - timedelta(hours=12)),
            ActivityEvent(1, ActivityType.VIDEO_POST, end - timedelta(hours=1)),
            ActivityEvent(1, ActivityType.COMMENT, end - timedelta(days=2)),
        ]
        assert raw_points(events, DEFAULT_ACTIVITY_POINTS, end) == pytest.approx(10 + 50 + 8 * 0.95)

    def test_unknown_type_weighs_zero(self):
        _, end = day_bounds(REWARD_DAY)
        events = [ActivityEvent(1, ActivityType.FOLLOW, end)]
        assert raw_points(events, {"LIKE": 1}, end) == 0

    def test_no_events(self):
        _, end = day_bounds(REWARD_DAY)
        assert raw_points([], DEFAULT_ACTIVITY_POINTS, end) == 0


class TestCombinePoints:
    def test_pipeline(self):
        result = combine_points(100.0, 0.5, 2.0, 1.2)
        assert result.filtered_points == 50.0
        assert result.final_points == 120

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2
        assert combine_points(5.0, 1.0, 1.0, 0.5).final_points == 3

    @pytest.mark.parametrize("raw", [0.0, 7.0, 33.3, 1000.0])
    def test_monotone_in_each_multiplier(self, raw):
        factors = [0.0, 0.075, 0.3, 0.5, 1.0, 2.0, 5.0, 10.0]
        for low, high in zip(factors, factors[1:]):
            assert combine_points(raw, low, 1.0, 1.0).final_points <= combine_points(raw, high, 1.0, 1.0).final_points
            assert combine_points(raw, 1.0, low, 1.0).final_points <= combine_points(raw, 1.0, high, 1.0).final_points
            assert combine_points(raw, 1.0, 1.0, low).final_points <= combine_points(raw, 1.0, 1.0, high).final_points


# ===========================================================================
# PointsCalculator service
# ===========================================================================
class TestPointsCalculator:
    def test_fresh_poster(self, services, db_engine):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 3, at=DAY_NOON)
        scored = services.points.calculate(1, REWARD_DAY)
        assert scored.event_count == 3
        assert scored.breakdown.raw_points == 30
        assert scored.bot_check.penalty == 1.0
        assert scored.final_points == 30

    def test_lookback_window_default_is_one_day(self, services, db_engine):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 1, at=DAY_NOON)
        add_posts(db_engine, 1, 1, at=DAY_NOON - timedelta(days=3))
        assert services.points.calculate(1, REWARD_DAY).event_count == 1

    def test_longer_lookback_decays_older_events(self, db_engine, notifier):
        services = build_services(
            db_engine, RewardsConfig(points_lookback_days=7, retry_backoff_seconds=0.0), notifier,
        )
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 1, at=DAY_NOON)
        add_posts(db_engine, 1, 1, at=DAY_NOON - timedelta(days=3))
        scored = services.points.calculate(1, REWARD_DAY)
        assert scored.event_count == 2
        # 3.5 days before the end of the window
        assert scored.breakdown.raw_points == pytest.approx(10 + 10 * 0.70)

    def test_bot_penalty_applies(self, services, db_engine):
        add_user(db_engine, 1)
        add_user(db_engine, 2)
        (post_id,) = add_posts(db_engine, 2, 1)
        add_interactions(db_engine, 1, post_id, "like", 600)
        scored = services.points.calculate(1, REWARD_DAY, record_flags=False)
        assert scored.breakdown.raw_points == 600
        assert scored.bot_check.penalty == pytest.approx(0.075)
        assert scored.breakdown.filtered_points == pytest.approx(45.0)

    def test_quality_multiplier_scales_points(self, services, db_engine):
        add_user(db_engine, 1)
        with Session(db_engine) as session:
            session.add(UserReputationScore(user_id=1, overall_reputation=1.0))
            session.commit()
        for post_id in add_posts(db_engine, 1, 2, at=DAY_NOON):
            services.quality.calculate(post_id)
        scored = services.points.calculate(1, REWARD_DAY)
        assert scored.breakdown.quality_multiplier == 10.0
        assert scored.breakdown.reputation_multiplier == 1.0
        assert scored.final_points == 200

    def test_scored_posts_also_lift_reputation(self, services, db_engine):
        """Quality-scored posts raise historical quality to 2.0, so reputation is 1.35."""
        add_user(db_engine, 1)
        for post_id in add_posts(db_engine, 1, 2, at=DAY_NOON):
            services.quality.calculate(post_id)
        scored = services.points.calculate(1, REWARD_DAY)
        assert scored.breakdown.reputation_multiplier == pytest.approx(1.35)
        assert scored.final_points == 270
