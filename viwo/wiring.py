"""
viwo.wiring — Service Composition
==================================

Builds the reward pipeline from one engine and one config.  Every
component receives its collaborators through its constructor; this is
the only place that knows the whole graph::

    LedgerStore ◄── StakingService
        ▲
        └────── RewardPoolDistributor ──► PointsCalculator
                                             │
          ActivityAggregator ◄── BotFilter ◄─┤
                                QualityScorer ◄┤
                             ReputationScorer ◄┘

    BuybackService  (treasury buybacks, writes vcoin_burns)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from viwo.services.activity_service import ActivityAggregator
from viwo.services.anti_bot_service import BotFilter
from viwo.services.buyback_service import BuybackService
from viwo.services.ledger_service import LedgerStore
from viwo.services.notifier import Notifier, notifier_from_env
from viwo.services.points_service import PointsCalculator
from viwo.services.quality_service import QualityScorer
from viwo.services.reputation_service import ReputationScorer
from viwo.services.reward_service import RewardPoolDistributor
from viwo.services.staking_service import StakingService

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig


@dataclass(slots=True)
class Services:
    engine: Engine
    config: RewardsConfig
    notifier: Notifier
    ledger: LedgerStore
    aggregator: ActivityAggregator
    bot_filter: BotFilter
    quality: QualityScorer
    reputation: ReputationScorer
    points: PointsCalculator
    distributor: RewardPoolDistributor
    staking: StakingService
    buyback: BuybackService


def build_services(
    engine: Engine,
    config: RewardsConfig,
    notifier: Notifier | None = None,
) -> Services:
    notifier = notifier or notifier_from_env(engine)
    ledger = LedgerStore(engine, config, notifier)
    aggregator = ActivityAggregator(engine)
    bot_filter = BotFilter(engine, config, aggregator, notifier)
    quality = QualityScorer(engine, config)
    reputation = ReputationScorer(engine, config)
    points = PointsCalculator(config, aggregator, bot_filter, quality, reputation)
    return Services(
        engine=engine,
        config=config,
        notifier=notifier,
        ledger=ledger,
        aggregator=aggregator,
        bot_filter=bot_filter,
        quality=quality,
        reputation=reputation,
        points=points,
        distributor=RewardPoolDistributor(engine, config, aggregator, points, ledger),
        staking=StakingService(engine, config, ledger),
        buyback=BuybackService(engine, config),
    )
