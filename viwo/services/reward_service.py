"""
viwo.services.reward_service — Reward Pool Distributor
=======================================================

The daily batch job.  For one rewarded UTC day:

1. Bail out if a ``daily_reward_distributions`` row for the day exists.
2. Size the pool and the per-user cap from :class:`RewardsConfig`.
3. Score every active user (activity → bot filter → points).  A user
   whose scoring fails is logged and excluded; the run continues.
4. Split the pool in proportion to points under the cap.
5. Credit each user in their own unit of work, keyed
   ``daily-reward:<date>:<user_id>`` so an interrupted run can be
   re-invoked without paying anyone twice.
6. Write the summary row.  Its unique date is the cross-process guard.

"Skip" outcomes (already distributed, nobody active, nobody qualifying)
come back as a :class:`DistributionResult` with ``success=False``; they
are not faults.

Also serves the read side (reward history, leaderboard) and immediate
per-action rewards.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from viwo.constants import (
    SOURCE_ACTION_PREFIX,
    SOURCE_DAILY_REWARD,
    ZERO,
    daily_reward_key,
    day_bounds,
    previous_utc_day,
    to_vcn,
    utcnow,
)
from viwo.database.engine import unit_of_work
from viwo.database.models import (
    DailyRewardDistribution,
    TransactionType,
    User,
    VCoinTransaction,
)
from viwo.engine.allocation import allocate, top_earner
from viwo.errors import (
    AlreadyDistributedError,
    DistributionSkipped,
    InvalidAmountError,
    NoActiveUsersError,
    NoQualifyingUsersError,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig
    from viwo.services.activity_service import ActivityAggregator
    from viwo.services.ledger_service import LedgerStore
    from viwo.services.points_service import PointsCalculator

logger = logging.getLogger(__name__)

T = TypeVar("T")

LEADERBOARD_PERIODS: dict[str, int] = {"daily": 1, "weekly": 7, "monthly": 30}
REASON_NO_CREDITS = "no credits succeeded"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DistributionResult:
    success: bool
    day: date
    reason: str | None = None
    distributed: Decimal = ZERO
    recipients: int = 0
    average_reward: Decimal = ZERO
    top_earner: tuple[int, Decimal] | None = None
    attempted: int = 0
    succeeded: int = 0
    failed_user_ids: tuple[int, ...] = ()
    total_pool: Decimal = ZERO
    total_points: int = 0
    rewards: dict[int, Decimal] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Operator summary, as printed by ``distribute-rewards``."""
        if not self.success:
            return {"success": False, "date": self.day.isoformat(), "reason": self.reason}
        return {
            "success": True,
            "date": self.day.isoformat(),
            "distributed": str(self.distributed),
            "recipients": self.recipients,
            "averageReward": str(self.average_reward),
            "topEarner": (
                {"userId": self.top_earner[0], "amount": str(self.top_earner[1])}
                if self.top_earner else None
            ),
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failedUserIds": list(self.failed_user_ids),
        }


# ---------------------------------------------------------------------------
# Distributor
# ---------------------------------------------------------------------------
class RewardPoolDistributor:
    def __init__(
        self,
        engine: Engine,
        config: RewardsConfig,
        aggregator: ActivityAggregator,
        points: PointsCalculator,
        ledger: LedgerStore,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.config = config
        self.aggregator = aggregator
        self.points = points
        self.ledger = ledger
        self._sleep = sleep

    # -- batch --------------------------------------------------------------

    def run_daily_distribution(self, day: date | None = None) -> DistributionResult:
        """Distribute the pool for *day* (default: the previous UTC day).

        Never raises for skip outcomes; unexpected infrastructure errors
        outside the per-user loop propagate.
        """
        day = day or previous_utc_day()
        try:
            return self._distribute(day)
        except DistributionSkipped as skip:
            logger.info("Daily distribution for %s skipped: %s", day, skip.reason)
            return DistributionResult(success=False, day=day, reason=skip.reason)

    def _distribute(self, day: date) -> DistributionResult:
        if self._already_distributed(day):
            raise AlreadyDistributedError(day)

        pool = self.config.daily_pool
        cap = self.config.per_user_cap
        start, end = day_bounds(day)

        active = self.aggregator.active_user_ids(start, end)
        if not active:
            raise NoActiveUsersError(day)
        logger.info("Distributing %s VCN for %s across %d active users", pool, day, len(active))

        failed: list[int] = []
        points: dict[int, int] = {}
        for user_id in active:
            try:
                scored = self._with_retries(
                    lambda uid=user_id: self.points.calculate(uid, day), user_id, "points"
                )
            except Exception:
                logger.exception(
                    "Scoring failed for user %d; excluded from %s", user_id, day,
                    extra={"user_id": user_id, "stage": "points"},
                )
                failed.append(user_id)
                continue
            if scored.final_points >= self.config.min_points and scored.final_points > 0:
                points[user_id] = scored.final_points

        if not points:
            raise NoQualifyingUsersError(day)

        total_points = sum(points.values())
        rewards = allocate(points, pool, cap, self.config.cap_policy)

        paid: dict[int, Decimal] = {}
        attempted = 0
        for user_id, reward in rewards.items():
            if reward <= ZERO:
                continue
            attempted += 1
            try:
                outcome = self._with_retries(
                    lambda uid=user_id, amt=reward: self.ledger.credit_once(
                        uid, amt, SOURCE_DAILY_REWARD, related_id=day.isoformat(),
                        idempotency_key=daily_reward_key(day, uid),
                    ),
                    user_id,
                    "credit",
                )
            except Exception:
                logger.exception(
                    "Credit of %s VCN failed for user %d on %s", reward, user_id, day,
                    extra={"user_id": user_id, "stage": "credit"},
                )
                failed.append(user_id)
                continue
            if outcome.duplicate:
                logger.info("User %d already credited for %s; not paying again", user_id, day)
            paid[user_id] = to_vcn(outcome.transaction.amount)

        if not paid:
            logger.error("No credits succeeded for %s; summary not written", day)
            return DistributionResult(
                success=False,
                day=day,
                reason=REASON_NO_CREDITS,
                attempted=attempted,
                failed_user_ids=tuple(failed),
                total_pool=pool,
                total_points=total_points,
            )

        distributed = sum(paid.values(), ZERO)
        average = to_vcn(distributed / len(paid))
        best = top_earner(paid)

        try:
            with unit_of_work(self.engine) as session:
                session.add(DailyRewardDistribution(
                    distribution_date=day,
                    total_pool=pool,
                    active_users_count=len(active),
                    qualifying_users_count=len(points),
                    total_points=total_points,
                    vcn_distributed=distributed,
                    avg_reward_per_user=average,
                    top_earner_user_id=best[0] if best else None,
                    top_earner_amount=best[1] if best else None,
                    attempted_count=attempted,
                    succeeded_count=len(paid),
                    created_at=utcnow(),
                ))
        except IntegrityError:
            # A concurrent run wrote the summary first.
            raise AlreadyDistributedError(day) from None

        logger.info(
            "Distributed %s VCN to %d users for %s (attempted=%d, failed=%d)",
            distributed, len(paid), day, attempted, len(failed),
        )
        return DistributionResult(
            success=True,
            day=day,
            distributed=distributed,
            recipients=len(paid),
            average_reward=average,
            top_earner=best,
            attempted=attempted,
            succeeded=len(paid),
            failed_user_ids=tuple(failed),
            total_pool=pool,
            total_points=total_points,
            rewards=paid,
        )

    def _already_distributed(self, day: date) -> bool:
        with Session(self.engine) as session:
            return session.scalar(
                select(DailyRewardDistribution.id).where(
                    DailyRewardDistribution.distribution_date == day
                )
            ) is not None

    def _with_retries(self, fn: Callable[[], T], user_id: int, stage: str) -> T:
        """Run *fn*, retrying transient storage errors a bounded number of times."""
        attempts = self.config.user_retry_attempts
        for attempt in range(1, attempts):
            try:
                return fn()
            except OperationalError:
                logger.warning(
                    "Transient storage error for user %d at %s (attempt %d/%d); retrying",
                    user_id, stage, attempt, attempts,
                    extra={"user_id": user_id, "stage": stage},
                )
                self._sleep(self.config.retry_backoff_seconds * attempt)
        return fn()

    # -- immediate action rewards -------------------------------------------

    def award_action(self, user_id: int, action: str, related_id: str | int | None = None) -> VCoinTransaction | None:
        """Pay the fixed per-action reward (like / share / repost).

        With a *related_id* the reward is paid once per user, action and
        target; a repeat returns ``None``.
        """
        action = action.upper()
        amount = self.config.action_rewards.get(action)
        if amount is None:
            raise InvalidAmountError(f"No reward configured for action {action!r}")

        key = f"action:{action}:{user_id}:{related_id}" if related_id is not None else None
        outcome = self.ledger.credit_once(
            user_id, amount, f"{SOURCE_ACTION_PREFIX}{action}", related_id,
            idempotency_key=key,
        )
        return None if outcome.duplicate else outcome.transaction

    # -- reads --------------------------------------------------------------

    def get_distribution(self, day: date) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.scalar(
                select(DailyRewardDistribution).where(
                    DailyRewardDistribution.distribution_date == day
                )
            )
            if row is None:
                return None
            return {
                "date": row.distribution_date.isoformat(),
                "totalPool": str(to_vcn(row.total_pool)),
                "activeUsers": row.active_users_count,
                "qualifyingUsers": row.qualifying_users_count,
                "totalPoints": row.total_points,
                "vcnDistributed": str(to_vcn(row.vcn_distributed)),
                "avgRewardPerUser": str(to_vcn(row.avg_reward_per_user)),
                "topEarnerUserId": row.top_earner_user_id,
                "topEarnerAmount": (
                    str(to_vcn(row.top_earner_amount))
                    if row.top_earner_amount is not None else None
                ),
                "attempted": row.attempted_count,
                "succeeded": row.succeeded_count,
            }

    def get_reward_history(self, user_id: int, page: int = 1, limit: int = 20) -> dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        where = (
            VCoinTransaction.user_id == user_id,
            VCoinTransaction.source == SOURCE_DAILY_REWARD,
        )
        with Session(self.engine) as session:
            total = session.scalar(
                select(func.count()).select_from(VCoinTransaction).where(*where)
            ) or 0
            rows = session.scalars(
                select(VCoinTransaction)
                .where(*where)
                .order_by(VCoinTransaction.created_at.desc(), VCoinTransaction.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            data = [
                {
                    "amount": str(to_vcn(tx.amount)),
                    "rewardDate": tx.related_entity_id,
                    "date": tx.created_at.isoformat(),
                }
                for tx in rows
            ]

        return {
            "data": data,
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit,
        }

    def get_leaderboard(
        self,
        period: str = "daily",
        limit: int = 10,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Top earners by the sum of ``earn`` transactions in the period."""
        if period not in LEADERBOARD_PERIODS:
            raise ValueError(f"period must be one of {sorted(LEADERBOARD_PERIODS)}")
        since = (now or utcnow()) - timedelta(days=LEADERBOARD_PERIODS[period])
        earned = func.sum(VCoinTransaction.amount).label("earned")

        with Session(self.engine) as session:
            rows = session.execute(
                select(
                    User.id,
                    User.username,
                    User.display_name,
                    User.avatar_url,
                    User.verification_tier,
                    earned,
                )
                .select_from(VCoinTransaction)
                .join(User, User.id == VCoinTransaction.user_id)
                .where(
                    VCoinTransaction.type == TransactionType.EARN.value,
                    VCoinTransaction.created_at >= since,
                )
                .group_by(
                    User.id,
                    User.username,
                    User.display_name,
                    User.avatar_url,
                    User.verification_tier,
                )
                .order_by(earned.desc())
                .limit(limit)
            ).all()

        return {
            "period": period,
            "leaderboard": [
                {
                    "user": {
                        "id": row.id,
                        "username": row.username,
                        "displayName": row.display_name,
                        "avatarUrl": row.avatar_url,
                        "verificationTier": row.verification_tier,
                    },
                    "earned": str(to_vcn(Decimal(str(row.earned)))),
                }
                for row in rows
            ],
        }
