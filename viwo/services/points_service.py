"""
viwo.services.points_service — Points Calculator
=================================================

Orchestrates one user's score for a rewarded day:

1. Activity events over the look-back window (``points_lookback_days``
   ending at the end of the day) → decayed raw points.
2. Bot Filter over the single day → penalty (and persisted flags).
3. Content quality multiplier of the user's recent scored posts.
4. Reputation multiplier (cached, computed on a miss).

The arithmetic itself lives in :mod:`viwo.engine.points`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

from viwo.constants import day_bounds
from viwo.engine.anti_bot import BotCheck
from viwo.engine.points import PointsBreakdown, combine_points, raw_points

if TYPE_CHECKING:
    from viwo.config import RewardsConfig
    from viwo.services.activity_service import ActivityAggregator
    from viwo.services.anti_bot_service import BotFilter
    from viwo.services.quality_service import QualityScorer
    from viwo.services.reputation_service import ReputationScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserPoints:
    user_id: int
    day: date
    event_count: int
    bot_check: BotCheck
    breakdown: PointsBreakdown

    @property
    def final_points(self) -> int:
        return self.breakdown.final_points


class PointsCalculator:
    def __init__(
        self,
        config: RewardsConfig,
        aggregator: ActivityAggregator,
        bot_filter: BotFilter,
        quality: QualityScorer,
        reputation: ReputationScorer,
    ) -> None:
        self.weights = dict(config.activity_points)
        self.lookback_days = max(config.points_lookback_days, 1)
        self.aggregator = aggregator
        self.bot_filter = bot_filter
        self.quality = quality
        self.reputation = reputation

    def calculate(self, user_id: int, day: date, *, record_flags: bool = True) -> UserPoints:
        """Final points of *user_id* for *day*.

        With ``record_flags=False`` the bot heuristics are evaluated but no
        flag rows are written (used for previews).
        """
        start, end = day_bounds(day)
        lookback_start = end - timedelta(days=self.lookback_days)

        events = self.aggregator.events(user_id, lookback_start, end)
        raw = raw_points(events, self.weights, reference=end)

        if record_flags:
            bot_check = self.bot_filter.apply(user_id, start, end)
        else:
            _, bot_check = self.bot_filter.check(user_id, start, end)

        quality = self.quality.user_multiplier(user_id, end)
        reputation = self.reputation.multiplier(user_id)

        breakdown = combine_points(raw, bot_check.penalty, quality, reputation)
        logger.debug(
            "User %d on %s: raw=%.2f penalty=%.3f quality=%.2f rep=%.2f final=%d",
            user_id, day, raw, bot_check.penalty, quality, reputation, breakdown.final_points,
        )
        return UserPoints(
            user_id=user_id,
            day=day,
            event_count=len(events),
            bot_check=bot_check,
            breakdown=breakdown,
        )
